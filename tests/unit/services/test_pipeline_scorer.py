from __future__ import annotations

import itertools
import logging
from datetime import timedelta

import pytest

from app.core.exceptions import ComputationError, NotFoundError
from app.models import ScoreEvent, ScoreHistoryEntry, ScoringRun
from app.services.call_score_service import CallScoreService
from app.services.pipeline_scorer import PipelineScorer
from app.services.score_audit_service import ScoreAuditService
from app.services.scoring_engine import round2


def _history(session, recommendation_id: str | None = None) -> list[ScoreHistoryEntry]:
    query = session.query(ScoreHistoryEntry)
    if recommendation_id is not None:
        query = query.filter(ScoreHistoryEntry.recommendation_id == recommendation_id)
    return query.order_by(ScoreHistoryEntry.scored_at).all()


def test_recalculate_appends_one_history_row(session, clock, make_deal):
    deal = make_deal(items=[(1200.0, 800.0, 1)])

    result = PipelineScorer(session, clock=clock).recalculate(deal.id, "ui_action")

    rows = _history(session, deal.id)
    assert len(rows) == 1
    assert rows[0].id == result.history_id
    assert rows[0].trigger_source == "ui_action"
    assert rows[0].scored_at == clock.current
    assert 0 <= result.confidence_score <= 100
    assert 0 <= result.confidence_percent <= 1
    assert result.weighted_monthly == round2(1200.0 * result.confidence_percent)
    assert result.weighted_onetime == round2(800.0 * result.confidence_percent)
    assert rows[0].breakdown == result.penalty_breakdown


@pytest.mark.parametrize("status", ["draft", "accepted", "archived"])
def test_recalculate_skips_inactive_statuses_without_writing(session, clock, make_deal, status):
    deal = make_deal(status=status)

    assert PipelineScorer(session, clock=clock).recalculate(deal.id) is None
    assert _history(session, deal.id) == []


def test_recalculate_scores_declined_deals(session, clock, make_deal):
    deal = make_deal(status="declined")

    assert PipelineScorer(session, clock=clock).recalculate(deal.id) is not None
    assert len(_history(session, deal.id)) == 1


def test_recalculate_surfaces_errors(session, clock, make_deal):
    scorer = PipelineScorer(session, clock=clock)
    malformed = make_deal(items=[])

    with pytest.raises(NotFoundError):
        scorer.recalculate("no-such-deal")
    with pytest.raises(ComputationError):
        scorer.recalculate(malformed.id)
    assert _history(session) == []


def test_history_is_append_only_across_recalculations(session, clock, make_deal):
    deal = make_deal()
    scorer = PipelineScorer(session, clock=clock)

    first = scorer.recalculate(deal.id)
    clock.advance(days=30)
    second = scorer.recalculate(deal.id)

    rows = _history(session, deal.id)
    assert [row.id for row in rows] == [first.history_id, second.history_id]
    assert rows[0].confidence_score == first.confidence_score
    assert second.confidence_score < first.confidence_score


def test_batch_results_align_with_input_and_isolate_failures(session, clock, make_deal):
    good = make_deal()
    malformed = make_deal(items=[(None, None, 1)])
    other = make_deal(client_name="Bright Smiles")
    draft = make_deal(status="draft")
    ids = [good.id, malformed.id, other.id, draft.id, "missing"]

    results, summary = PipelineScorer(session, clock=clock).recalculate_many(ids)

    assert [r is not None for r in results] == [True, False, True, False, False]
    assert results[0].recommendation_id == good.id
    assert results[2].recommendation_id == other.id
    assert summary.succeeded == 2
    assert summary.failed == 2
    assert summary.skipped == 1
    assert {e["recommendation_id"] for e in summary.errors} == {malformed.id, "missing"}
    assert all(e["error"] for e in summary.errors)
    assert len(_history(session)) == 2


def test_recalculate_batch_returns_positional_list(session, clock, make_deal):
    deals = [make_deal(client_name=f"Clinic {i}") for i in range(3)]

    results = PipelineScorer(session, clock=clock).recalculate_batch([d.id for d in reversed(deals)])

    assert [r.recommendation_id for r in results] == [d.id for d in reversed(deals)]


def test_all_active_with_one_malformed_deal(session, clock, make_deal):
    for i in range(4):
        make_deal(client_name=f"Clinic {i}")
    broken = make_deal(items=[])
    make_deal(status="accepted")

    summary = PipelineScorer(session, clock=clock).recalculate_all_active("manual_refresh", force=True)

    assert summary.processed == 5
    assert summary.succeeded == 4
    assert summary.failed == 1
    assert summary.errors == [{"recommendation_id": broken.id, "error": "recommendation has no priced line items"}]
    assert summary.processed == summary.succeeded + summary.failed + summary.skipped


def test_forced_runs_append_rows_each_time(session, clock, make_deal):
    deal = make_deal()
    scorer = PipelineScorer(session, clock=clock)

    scorer.recalculate_all_active("manual_refresh", force=True)
    clock.advance(minutes=5)
    scorer.recalculate_all_active("manual_refresh", force=True)

    rows = _history(session, deal.id)
    assert len(rows) == 2
    assert rows[0].scored_at <= rows[1].scored_at


def test_unforced_rerun_skips_fresh_deals(session, clock, make_deal):
    for i in range(3):
        make_deal(client_name=f"Clinic {i}")
    scorer = PipelineScorer(session, clock=clock)

    first = scorer.recalculate_all_active("cron")
    clock.advance(hours=1)
    second = scorer.recalculate_all_active("cron")

    assert first.succeeded == 3
    assert second.skipped == second.processed == 3
    assert second.succeeded == 0
    assert len(_history(session)) == 3


def test_stale_deals_are_rescored_after_threshold(session, clock, make_deal):
    make_deal()
    scorer = PipelineScorer(session, clock=clock, staleness_hours=23)

    scorer.recalculate_stale()
    clock.advance(hours=23, minutes=1)
    summary = scorer.recalculate_stale()

    assert summary.succeeded == 1
    assert [row.trigger_source for row in _history(session)] == ["cron", "cron"]


def test_time_budget_stops_run_early(session, clock, make_deal):
    for i in range(3):
        make_deal(client_name=f"Clinic {i}")
    ticks = itertools.count(0, 100)
    scorer = PipelineScorer(session, clock=clock, timer=lambda: next(ticks), time_budget_seconds=120)

    summary = scorer.recalculate_all_active("manual_refresh", force=True)

    assert summary.timed_out is True
    assert summary.succeeded == 1
    assert summary.skipped == 2
    assert summary.processed == 3
    assert len(_history(session)) == 1


def test_high_error_rate_logs_alert(session, clock, make_deal, caplog):
    make_deal(items=[])
    make_deal(items=[(None, None, 1)])

    with caplog.at_level(logging.ERROR, logger="app.services.pipeline_scorer"):
        summary = PipelineScorer(session, clock=clock).recalculate_all_active("cron", force=True)

    assert summary.failed == 2
    assert any(record.getMessage() == "pipeline_scoring.error_rate_alert" for record in caplog.records)


def test_event_queue_rescores_once_per_deal_and_marks_events(session, clock, make_deal):
    deal = make_deal()
    session.add_all(
        [
            ScoreEvent(recommendation_id=deal.id, event_type="opened", created_at=clock.current),
            ScoreEvent(recommendation_id=deal.id, event_type="viewed", created_at=clock.current),
        ]
    )
    session.commit()

    summary = PipelineScorer(session, clock=clock).process_event_queue()

    assert summary.succeeded == 1
    assert [row.trigger_source for row in _history(session, deal.id)] == ["webhook"]
    assert all(event.processed_at == clock.current for event in session.query(ScoreEvent).all())


def test_run_daily_logs_both_runs(session, clock, make_deal):
    make_deal()

    runs = PipelineScorer(session, clock=clock).run_daily()

    assert set(runs) == {"event_queue", "daily_cron"}
    logged = {run.run_type: run for run in session.query(ScoringRun).all()}
    assert set(logged) == {"event_queue", "daily_cron"}
    assert logged["daily_cron"].succeeded == 1
    assert logged["event_queue"].processed == 0


def test_get_history_is_chronological(session, clock, make_deal):
    deal = make_deal()
    scorer = PipelineScorer(session, clock=clock)
    for _ in range(3):
        scorer.recalculate(deal.id)
        clock.advance(days=2)

    history = scorer.get_history(deal.id)

    assert len(history) == 3
    assert [h.scored_at for h in history] == sorted(h.scored_at for h in history)
    with pytest.raises(NotFoundError):
        scorer.get_history("missing")


def test_history_rows_sharing_a_timestamp_keep_insertion_order(session, clock, make_deal):
    deal = make_deal()
    scorer = PipelineScorer(session, clock=clock)
    scorer.recalculate(deal.id)
    CallScoreService(session, clock=clock).upsert_call_scores(deal.id, {"plan_fit": "strong"})

    history = scorer.get_history(deal.id)
    events = ScoreAuditService(session, clock=clock).get_audit_trail(deal.id)

    assert [h.sequence for h in history] == [1, 2]
    assert [h.trigger_source for h in history] == ["manual_refresh", "ui_action"]
    assert history[0].scored_at == history[1].scored_at
    assert scorer.latest_history_entry().id == history[1].id
    assert events[0]["deltas"] is None
    assert events[1]["deltas"]["score_delta"] == history[1].confidence_score - history[0].confidence_score
    assert "base_score" in {change["field"] for change in events[1]["deltas"]["changes"]}
