"""Pipeline confidence recalculation service.

Loads deal inputs, runs the pure scoring engine and appends one row to
``pipeline_score_history`` per successful recalculation. Bulk entry points
isolate every deal in its own SAVEPOINT and never raise.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select

from app.core.config import get_config
from app.core.exceptions import ComputationError, InvalidStateError, NotFoundError, PortalError
from app.models import (
    ACTIVE_SCORING_STATUSES,
    Recommendation,
    ScoreEvent,
    ScoreHistoryEntry,
    ScoringRun,
    ScoringRunType,
    TriggerSource,
)
from app.schemas.scoring import ScoringConfig
from app.services.base_service import BaseService, Clock
from app.services.scoring_config_service import ScoringConfigService
from app.services.scoring_engine import compute_pipeline_score
from app.services.scoring_input_service import ScoringInputService

logger = logging.getLogger(__name__)

MAX_LOGGED_ERRORS = 50


@dataclass
class RecalculationResult:
    recommendation_id: str
    history_id: str
    confidence_score: int
    confidence_percent: float
    weighted_monthly: float
    weighted_onetime: float
    base_score: int
    total_penalties: float
    total_bonus: float
    penalty_breakdown: dict
    trigger_source: str
    scored_at: datetime

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["scored_at"] = self.scored_at.isoformat()
        return payload


@dataclass
class BatchRecalculateResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    timed_out: bool = False
    errors: list[dict] = field(default_factory=list)

    @property
    def error_rate(self) -> float:
        attempted = self.succeeded + self.failed
        return self.failed / attempted if attempted else 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def _trigger_value(trigger_source: TriggerSource | str) -> str:
    return TriggerSource(trigger_source).value


class PipelineScorer(BaseService):
    """Recalculate and persist pipeline confidence scores."""

    def __init__(
        self,
        db,
        clock: Clock | None = None,
        timer: Callable[[], float] | None = None,
        staleness_hours: float | None = None,
        time_budget_seconds: float | None = None,
        error_rate_alert: float | None = None,
    ) -> None:
        super().__init__(db, clock=clock)
        settings = get_config()
        self.timer = timer or time.monotonic
        self.staleness_hours = settings.SCORE_STALENESS_HOURS if staleness_hours is None else staleness_hours
        self.time_budget_seconds = (
            settings.SCORE_BATCH_TIME_BUDGET_SECONDS if time_budget_seconds is None else time_budget_seconds
        )
        self.error_rate_alert = settings.SCORE_ERROR_RATE_ALERT if error_rate_alert is None else error_rate_alert
        self.config_service = ScoringConfigService(db)
        self.input_service = ScoringInputService(db, clock=self.clock, config_service=self.config_service)

    def _next_sequence(self, recommendation_id: str) -> int:
        current = self.db.scalar(
            select(func.max(ScoreHistoryEntry.sequence)).where(ScoreHistoryEntry.recommendation_id == recommendation_id)
        )
        return int(current or 0) + 1

    def _score_one(
        self,
        recommendation_id: str,
        trigger_source: str,
        config: ScoringConfig,
    ) -> RecalculationResult | None:
        recommendation = self.input_service.get_recommendation(recommendation_id)
        if recommendation.status not in ACTIVE_SCORING_STATUSES:
            logger.info(
                "pipeline_scoring.skipped_inactive",
                extra={
                    "event": "pipeline_scoring.skipped_inactive",
                    "recommendation_id": recommendation_id,
                    "status": recommendation.status,
                },
            )
            return None

        now = self.now()
        scoring_input = self.input_service.assemble(recommendation_id, now=now, config=config)
        result = compute_pipeline_score(scoring_input)
        sequence = self._next_sequence(recommendation_id)

        entry = ScoreHistoryEntry(
            recommendation_id=recommendation_id,
            confidence_score=result.confidence_score,
            confidence_percent=result.confidence_percent,
            weighted_monthly=result.weighted_monthly,
            weighted_onetime=result.weighted_onetime,
            base_score=result.base_score,
            total_penalties=result.total_penalties,
            total_bonus=result.total_bonus,
            breakdown=result.penalty_breakdown,
            trigger_source=trigger_source,
            scored_at=now,
            sequence=sequence,
        )
        self.db.add(entry)
        self.db.flush()

        return RecalculationResult(
            recommendation_id=recommendation_id,
            history_id=entry.id,
            confidence_score=result.confidence_score,
            confidence_percent=result.confidence_percent,
            weighted_monthly=result.weighted_monthly,
            weighted_onetime=result.weighted_onetime,
            base_score=result.base_score,
            total_penalties=result.total_penalties,
            total_bonus=result.total_bonus,
            penalty_breakdown=result.penalty_breakdown,
            trigger_source=trigger_source,
            scored_at=now,
        )

    def recalculate(
        self,
        recommendation_id: str,
        trigger_source: TriggerSource | str = TriggerSource.MANUAL_REFRESH,
    ) -> RecalculationResult | None:
        """Score one deal and append a history row.

        Returns ``None`` for deals outside the active scoring statuses.
        Raises ``NotFoundError`` and ``ComputationError`` to the caller.
        """
        trigger = _trigger_value(trigger_source)
        config = self.config_service.get_config()
        try:
            result = self._score_one(recommendation_id, trigger, config)
        except Exception:
            self.rollback()
            raise
        if result is None:
            return None

        self.commit()
        logger.info(
            "pipeline_scoring.recalculated",
            extra={
                "event": "pipeline_scoring.recalculated",
                "recommendation_id": recommendation_id,
                "confidence_score": result.confidence_score,
                "trigger_source": trigger,
            },
        )
        return result

    def recalculate_after_change(
        self,
        recommendation_id: str,
        trigger_source: TriggerSource | str = TriggerSource.UI_ACTION,
    ) -> RecalculationResult | None:
        """Rescore after a committed deal update.

        The update stands even when scoring fails; the failure is logged and
        the next cron run picks the deal up again.
        """
        try:
            return self.recalculate(recommendation_id, trigger_source)
        except PortalError as exc:
            logger.warning(
                "pipeline_scoring.follow_up_failed",
                extra={
                    "event": "pipeline_scoring.follow_up_failed",
                    "recommendation_id": recommendation_id,
                    "trigger_source": _trigger_value(trigger_source),
                    "error": str(exc),
                },
            )
            return None

    def _run_many(
        self,
        recommendation_ids: list[str],
        trigger_source: str,
        started: float | None = None,
    ) -> tuple[list[RecalculationResult | None], BatchRecalculateResult]:
        started = self.timer() if started is None else started
        summary = BatchRecalculateResult()
        results: list[RecalculationResult | None] = []
        config = self.config_service.get_config()

        for index, recommendation_id in enumerate(recommendation_ids):
            if self.timer() - started > self.time_budget_seconds:
                remaining = len(recommendation_ids) - index
                summary.timed_out = True
                summary.skipped += remaining
                summary.processed += remaining
                results.extend([None] * remaining)
                logger.warning(
                    "pipeline_scoring.time_budget_exceeded",
                    extra={
                        "event": "pipeline_scoring.time_budget_exceeded",
                        "remaining": remaining,
                        "time_budget_seconds": self.time_budget_seconds,
                    },
                )
                break

            summary.processed += 1
            try:
                with self.db.begin_nested():
                    result = self._score_one(recommendation_id, trigger_source, config)
            except (NotFoundError, ComputationError, InvalidStateError) as exc:
                summary.failed += 1
                summary.errors.append({"recommendation_id": recommendation_id, "error": str(exc)})
                results.append(None)
                continue
            except Exception as exc:
                logger.exception(
                    "pipeline_scoring.unexpected_failure",
                    extra={"event": "pipeline_scoring.unexpected_failure", "recommendation_id": recommendation_id},
                )
                summary.failed += 1
                summary.errors.append({"recommendation_id": recommendation_id, "error": str(exc)})
                results.append(None)
                continue

            if result is None:
                summary.skipped += 1
            else:
                summary.succeeded += 1
            results.append(result)

        self.commit()
        summary.duration_ms = int((self.timer() - started) * 1000)
        self._check_error_rate(summary, trigger_source)
        return results, summary

    def _check_error_rate(self, summary: BatchRecalculateResult, trigger_source: str) -> None:
        if summary.failed and summary.error_rate > self.error_rate_alert:
            logger.error(
                "pipeline_scoring.error_rate_alert",
                extra={
                    "event": "pipeline_scoring.error_rate_alert",
                    "trigger_source": trigger_source,
                    "failed": summary.failed,
                    "succeeded": summary.succeeded,
                    "error_rate": round(summary.error_rate, 3),
                },
            )

    def recalculate_batch(
        self,
        recommendation_ids: list[str],
        trigger_source: TriggerSource | str = TriggerSource.MANUAL_REFRESH,
    ) -> list[RecalculationResult | None]:
        """Score several deals; the output is positionally aligned with the input."""
        results, _ = self._run_many(list(recommendation_ids), _trigger_value(trigger_source))
        return results

    def recalculate_many(
        self,
        recommendation_ids: list[str],
        trigger_source: TriggerSource | str = TriggerSource.MANUAL_REFRESH,
    ) -> tuple[list[RecalculationResult | None], BatchRecalculateResult]:
        return self._run_many(list(recommendation_ids), _trigger_value(trigger_source))

    def active_recommendation_ids(self) -> list[str]:
        return list(
            self.db.scalars(
                select(Recommendation.id)
                .where(Recommendation.status.in_(ACTIVE_SCORING_STATUSES))
                .order_by(Recommendation.created_at, Recommendation.id)
            ).all()
        )

    def latest_scored_at(self, recommendation_ids: list[str]) -> dict[str, datetime]:
        if not recommendation_ids:
            return {}
        rows = self.db.execute(
            select(ScoreHistoryEntry.recommendation_id, func.max(ScoreHistoryEntry.scored_at))
            .where(ScoreHistoryEntry.recommendation_id.in_(recommendation_ids))
            .group_by(ScoreHistoryEntry.recommendation_id)
        ).all()
        return {recommendation_id: scored_at for recommendation_id, scored_at in rows}

    def recalculate_all_active(
        self,
        trigger_source: TriggerSource | str = TriggerSource.MANUAL_REFRESH,
        force: bool = False,
    ) -> BatchRecalculateResult:
        """Rescore every active deal. Fresh deals are counted as skipped unless ``force``."""
        started = self.timer()
        trigger = _trigger_value(trigger_source)
        try:
            active_ids = self.active_recommendation_ids()
            due_ids = active_ids
            fresh_count = 0
            if not force:
                cutoff = self.now() - timedelta(hours=self.staleness_hours)
                latest = self.latest_scored_at(active_ids)
                due_ids = [rid for rid in active_ids if rid not in latest or latest[rid] <= cutoff]
                fresh_count = len(active_ids) - len(due_ids)

            _, summary = self._run_many(due_ids, trigger, started=started)
        except Exception as exc:
            self.rollback()
            logger.exception(
                "pipeline_scoring.bulk_failed",
                extra={"event": "pipeline_scoring.bulk_failed", "trigger_source": trigger},
            )
            return BatchRecalculateResult(
                failed=1,
                duration_ms=int((self.timer() - started) * 1000),
                errors=[{"recommendation_id": None, "error": str(exc)}],
            )

        summary.processed += fresh_count
        summary.skipped += fresh_count
        logger.info(
            "pipeline_scoring.bulk_completed",
            extra={"event": "pipeline_scoring.bulk_completed", "trigger_source": trigger, "force": force, **summary.to_dict()},
        )
        return summary

    def recalculate_stale(self) -> BatchRecalculateResult:
        return self.recalculate_all_active(TriggerSource.CRON, force=False)

    def process_event_queue(self, limit: int = 200) -> BatchRecalculateResult:
        """Rescore deals with queued webhook events, then mark those events processed."""
        started = self.timer()
        try:
            events = self.db.scalars(
                select(ScoreEvent)
                .where(ScoreEvent.processed_at.is_(None))
                .order_by(ScoreEvent.created_at)
                .limit(limit)
            ).all()
            recommendation_ids = list(dict.fromkeys(event.recommendation_id for event in events))
            _, summary = self._run_many(recommendation_ids, TriggerSource.WEBHOOK.value, started=started)

            processed_at = self.now()
            for event in events:
                event.processed_at = processed_at
            self.commit()
        except Exception as exc:
            self.rollback()
            logger.exception("pipeline_scoring.queue_failed", extra={"event": "pipeline_scoring.queue_failed"})
            return BatchRecalculateResult(
                failed=1,
                duration_ms=int((self.timer() - started) * 1000),
                errors=[{"recommendation_id": None, "error": str(exc)}],
            )
        return summary

    def log_run(self, run_type: ScoringRunType | str, summary: BatchRecalculateResult) -> ScoringRun:
        run = ScoringRun(
            run_type=ScoringRunType(run_type).value,
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=summary.skipped,
            duration_ms=summary.duration_ms,
            timed_out=summary.timed_out,
            errors=summary.errors[:MAX_LOGGED_ERRORS] or None,
            completed_at=self.now(),
        )
        self.db.add(run)
        self.commit()
        return run

    def run_daily(self) -> dict[str, BatchRecalculateResult]:
        """Drain the event queue, then rescore stale deals. Both runs are audited."""
        queue_summary = self.process_event_queue()
        self.log_run(ScoringRunType.EVENT_QUEUE, queue_summary)

        stale_summary = self.recalculate_stale()
        self.log_run(ScoringRunType.DAILY_CRON, stale_summary)

        return {"event_queue": queue_summary, "daily_cron": stale_summary}

    def get_history(self, recommendation_id: str) -> list[ScoreHistoryEntry]:
        """Chronological (oldest first) score history for one deal."""
        self.input_service.get_recommendation(recommendation_id)
        return list(
            self.db.scalars(
                select(ScoreHistoryEntry)
                .where(ScoreHistoryEntry.recommendation_id == recommendation_id)
                .order_by(ScoreHistoryEntry.scored_at.asc(), ScoreHistoryEntry.sequence.asc())
            ).all()
        )

    def count_history(self) -> int:
        return int(self.db.scalar(select(func.count()).select_from(ScoreHistoryEntry)) or 0)

    def latest_history_entry(self) -> ScoreHistoryEntry | None:
        return self.db.scalars(
            select(ScoreHistoryEntry)
            .order_by(ScoreHistoryEntry.scored_at.desc(), ScoreHistoryEntry.sequence.desc())
            .limit(1)
        ).first()
