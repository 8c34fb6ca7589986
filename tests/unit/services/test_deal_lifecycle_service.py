from __future__ import annotations

from datetime import timedelta

import pytest

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models import ArchiveHistoryEntry, ScoreEvent, ScoreHistoryEntry
from app.services.deal_lifecycle_service import DealLifecycleService
from app.services.pipeline_scorer import PipelineScorer


def test_archive_records_reason_and_history(session, clock, make_deal):
    deal = make_deal()
    PipelineScorer(session, clock=clock).recalculate(deal.id)

    archived = DealLifecycleService(session, clock=clock).archive(
        deal.id, "budget", notes="  Waiting on next fiscal year  ", user_id="rep-1"
    )

    assert archived.status == "archived"
    assert archived.archived_at == clock.current
    assert archived.archived_by == "rep-1"
    assert archived.archive_reason == "budget"
    assert archived.archive_notes == "Waiting on next fiscal year"
    entry = session.query(ArchiveHistoryEntry).one()
    assert entry.action == "archived"
    assert entry.reason == "budget"
    assert entry.confidence_score_at_action == session.query(ScoreHistoryEntry).one().confidence_score
    assert entry.performed_by == "rep-1"


def test_archive_rules(session, clock, make_deal):
    sent = make_deal()
    accepted = make_deal(status="accepted")
    service = DealLifecycleService(session, clock=clock)

    with pytest.raises(ValidationError):
        service.archive(sent.id, "ghosted")
    with pytest.raises(ValidationError):
        service.archive(sent.id, "other", notes="   ")
    with pytest.raises(NotFoundError):
        service.archive("missing", "budget")
    with pytest.raises(InvalidStateError):
        service.archive(accepted.id, "budget")

    service.archive(sent.id, "other", notes="Merged with sister practice")
    with pytest.raises(InvalidStateError):
        service.archive(sent.id, "timing")


def test_archived_deal_is_skipped_by_recalculation(session, clock, make_deal):
    deal = make_deal()
    DealLifecycleService(session, clock=clock).archive(deal.id, "went_dark")

    assert PipelineScorer(session, clock=clock).recalculate(deal.id) is None
    assert session.query(ScoreHistoryEntry).count() == 0


def test_revive_restarts_decay_from_revival(session, clock, make_deal):
    deal = make_deal(sent_at=clock.current - timedelta(days=60))
    scorer = PipelineScorer(session, clock=clock)
    decayed = scorer.recalculate(deal.id)
    service = DealLifecycleService(session, clock=clock)
    service.archive(deal.id, "went_dark")

    clock.advance(days=1)
    revived, result = service.revive(deal.id, user_id="rep-2")

    assert decayed.total_penalties > 0
    assert revived.status == "sent"
    assert revived.archived_at is None
    assert revived.archive_reason is None
    assert revived.revived_at == clock.current
    assert revived.revived_by == "rep-2"
    assert result is not None
    assert result.total_penalties == 0
    assert result.confidence_score > decayed.confidence_score
    actions = [e.action for e in session.query(ArchiveHistoryEntry).order_by(ArchiveHistoryEntry.created_at)]
    assert actions == ["archived", "revived"]


def test_revive_clears_snooze_only_when_resetting_metrics(session, clock, make_deal):
    keep = make_deal(snoozed_until=clock.current + timedelta(days=5), snooze_reason="Holiday")
    reset = make_deal(snoozed_until=clock.current + timedelta(days=5), snooze_reason="Holiday")
    service = DealLifecycleService(session, clock=clock)
    for deal in (keep, reset):
        service.archive(deal.id, "timing")

    kept, _ = service.revive(keep.id, reset_metrics=False)
    cleared, _ = service.revive(reset.id)

    assert kept.snoozed_until == clock.current + timedelta(days=5)
    assert cleared.snoozed_until is None
    assert cleared.snooze_reason is None


def test_revive_unsent_deal_returns_to_draft(session, clock, make_deal):
    deal = make_deal(status="archived", archive_reason="duplicate", archived_at=clock.current)
    deal.sent_at = None
    session.commit()

    revived, result = DealLifecycleService(session, clock=clock).revive(deal.id)

    assert revived.status == "draft"
    assert result is None


def test_revive_requires_archived_deal(session, clock, make_deal):
    deal = make_deal()
    service = DealLifecycleService(session, clock=clock)

    with pytest.raises(InvalidStateError):
        service.revive(deal.id)
    with pytest.raises(NotFoundError):
        service.revive("missing")


def test_status_transitions(session, clock, make_deal):
    draft = make_deal(status="draft")
    draft.sent_at = None
    session.commit()
    service = DealLifecycleService(session, clock=clock)

    sent, result = service.change_status(draft.id, "sent", user_id="rep-1")
    assert sent.status == "sent"
    assert sent.sent_at == clock.current
    assert result.trigger_source == "ui_action"

    declined, _ = service.change_status(draft.id, "declined")
    assert declined.status == "declined"

    resent, _ = service.change_status(draft.id, "sent")
    assert resent.sent_at == clock.current

    accepted, won = service.change_status(draft.id, "accepted")
    assert accepted.status == "accepted"
    assert won is None


def test_status_transition_rules(session, clock, make_deal):
    accepted = make_deal(status="accepted")
    draft = make_deal(status="draft")
    service = DealLifecycleService(session, clock=clock)

    with pytest.raises(ValidationError):
        service.change_status(draft.id, "won")
    with pytest.raises(ValidationError):
        service.change_status(draft.id, "archived")
    with pytest.raises(InvalidStateError):
        service.change_status(draft.id, "accepted")
    with pytest.raises(InvalidStateError):
        service.change_status(accepted.id, "sent")
    with pytest.raises(NotFoundError):
        service.change_status("missing", "sent")


def test_archive_analytics_groups_by_reason(session, clock, make_deal):
    service = DealLifecycleService(session, clock=clock)
    budget_a = make_deal(sent_at=clock.current - timedelta(days=10), items=[(1000.0, 500.0, 1)])
    budget_b = make_deal(sent_at=clock.current - timedelta(days=20), items=[(250.0, 0.0, 2)])
    dark = make_deal(sent_at=clock.current - timedelta(days=30), items=[(300.0, 100.0, 1)])
    unpriced = make_deal(sent_at=clock.current - timedelta(days=32), items=[(None, None, 1)])
    make_deal()
    for deal, reason in ((budget_a, "budget"), (budget_b, "budget"), (dark, "went_dark"), (unpriced, "went_dark")):
        service.archive(deal.id, reason)

    analytics = service.get_archive_analytics()

    assert analytics["total_archived"] == 4
    assert analytics["lost_mrr"] == 1800.0
    assert analytics["lost_onetime"] == 600.0
    assert analytics["avg_days_to_archive"] == 23
    assert analytics["top_reason"] == "budget"
    assert analytics["top_reason_percentage"] == 50
    assert analytics["reasons_breakdown"] == [
        {"reason": "budget", "count": 2, "mrr_lost": 1500.0, "onetime_lost": 500.0, "percentage": 50},
        {"reason": "went_dark", "count": 2, "mrr_lost": 300.0, "onetime_lost": 100.0, "percentage": 50},
    ]


def test_archive_analytics_date_window(session, clock, make_deal):
    service = DealLifecycleService(session, clock=clock)
    early = make_deal()
    service.archive(early.id, "timing")
    clock.advance(days=10)
    late = make_deal()
    service.archive(late.id, "not_a_fit")

    recent = service.get_archive_analytics(archived_after=clock.current - timedelta(days=1))
    empty = service.get_archive_analytics(archived_before=clock.current - timedelta(days=30))

    assert recent["total_archived"] == 1
    assert recent["top_reason"] == "not_a_fit"
    assert empty == {
        "total_archived": 0,
        "lost_mrr": 0.0,
        "lost_onetime": 0.0,
        "avg_days_to_archive": 0,
        "top_reason": None,
        "top_reason_percentage": 0,
        "reasons_breakdown": [],
    }


def test_queued_events_for_archived_deal_are_drained_without_scoring(session, clock, make_deal):
    deal = make_deal()
    DealLifecycleService(session, clock=clock).archive(deal.id, "chose_competitor")
    session.add(ScoreEvent(recommendation_id=deal.id, event_type="viewed"))
    session.commit()

    summary = PipelineScorer(session, clock=clock).process_event_queue()

    assert summary.skipped == 1
    assert session.query(ScoreEvent).filter(ScoreEvent.processed_at.is_(None)).count() == 0
    assert session.query(ScoreHistoryEntry).count() == 0
