"""Deal lifecycle: status transitions, archiving, revival and archive analytics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select

from app.core.exceptions import ComputationError, InvalidStateError, NotFoundError, ValidationError
from app.models import (
    STATUS_TRANSITIONS,
    ArchiveAction,
    ArchiveHistoryEntry,
    ArchiveReason,
    Recommendation,
    RecommendationItem,
    RecommendationStatus,
    ScoreHistoryEntry,
    TriggerSource,
)
from app.services.base_service import BaseService
from app.services.pipeline_scorer import PipelineScorer, RecalculationResult
from app.services.scoring_engine import round2
from app.services.scoring_input_service import PricingTotals, compute_pricing_totals

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass
class ReasonBreakdown:
    reason: str
    count: int = 0
    mrr_lost: float = 0.0
    onetime_lost: float = 0.0
    percentage: int = 0


class DealLifecycleService(BaseService):
    def _get_recommendation(self, recommendation_id: str) -> Recommendation:
        recommendation = self.db.get(Recommendation, recommendation_id)
        if recommendation is None:
            raise NotFoundError(f"Recommendation not found: {recommendation_id}")
        return recommendation

    def _latest_score(self, recommendation_id: str) -> int | None:
        return self.db.scalar(
            select(ScoreHistoryEntry.confidence_score)
            .where(ScoreHistoryEntry.recommendation_id == recommendation_id)
            .order_by(ScoreHistoryEntry.scored_at.desc(), ScoreHistoryEntry.sequence.desc())
            .limit(1)
        )

    def _rescore(self, recommendation_id: str) -> RecalculationResult | None:
        scorer = PipelineScorer(self.db, clock=self.clock)
        return scorer.recalculate_after_change(recommendation_id, TriggerSource.UI_ACTION)

    def change_status(
        self,
        recommendation_id: str,
        status: str,
        user_id: str | None = None,
    ) -> tuple[Recommendation, RecalculationResult | None]:
        try:
            target = RecommendationStatus(status).value
        except ValueError as exc:
            raise ValidationError(f"Unknown status: {status}") from exc
        if target == RecommendationStatus.ARCHIVED.value:
            raise ValidationError("Use the archive action to archive a deal")

        recommendation = self._get_recommendation(recommendation_id)
        current = recommendation.status
        if target not in STATUS_TRANSITIONS.get(current, ()):
            raise InvalidStateError(f"Cannot transition from {current} to {target}")

        recommendation.status = target
        if target == RecommendationStatus.SENT.value and recommendation.sent_at is None:
            recommendation.sent_at = self.now()
        self.commit()
        logger.info(
            "lifecycle.status_changed",
            extra={
                "event": "lifecycle.status_changed",
                "recommendation_id": recommendation_id,
                "from_status": current,
                "to_status": target,
                "user_id": user_id,
            },
        )

        result = self._rescore(recommendation_id)
        self.db.refresh(recommendation)
        return recommendation, result

    def archive(
        self,
        recommendation_id: str,
        reason: str,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> Recommendation:
        """Move a deal out of the active pipeline. Archived deals are no longer scored."""
        try:
            reason = ArchiveReason(reason).value
        except ValueError as exc:
            raise ValidationError(f"Unknown archive reason: {reason}") from exc
        notes = notes.strip() if notes and notes.strip() else None
        if reason == ArchiveReason.OTHER.value and notes is None:
            raise ValidationError("Notes are required when the archive reason is 'other'")

        recommendation = self._get_recommendation(recommendation_id)
        if recommendation.status == RecommendationStatus.ARCHIVED.value:
            raise InvalidStateError("Deal is already archived")
        if recommendation.status == RecommendationStatus.ACCEPTED.value:
            raise InvalidStateError("Accepted deals cannot be archived")

        recommendation.status = RecommendationStatus.ARCHIVED.value
        recommendation.archived_at = self.now()
        recommendation.archived_by = user_id
        recommendation.archive_reason = reason
        recommendation.archive_notes = notes
        self.db.add(
            ArchiveHistoryEntry(
                recommendation_id=recommendation_id,
                action=ArchiveAction.ARCHIVED.value,
                reason=reason,
                notes=notes,
                confidence_score_at_action=self._latest_score(recommendation_id),
                performed_by=user_id,
                created_at=self.now(),
            )
        )
        self.commit()
        self.db.refresh(recommendation)
        logger.info(
            "lifecycle.archived",
            extra={"event": "lifecycle.archived", "recommendation_id": recommendation_id, "reason": reason},
        )
        return recommendation

    def revive(
        self,
        recommendation_id: str,
        reset_metrics: bool = True,
        user_id: str | None = None,
    ) -> tuple[Recommendation, RecalculationResult | None]:
        """Return an archived deal to the pipeline; decay restarts from the revival time.

        With ``reset_metrics`` any snooze is cleared as well.
        """
        recommendation = self._get_recommendation(recommendation_id)
        if recommendation.status != RecommendationStatus.ARCHIVED.value:
            raise InvalidStateError("Deal is not archived")

        score_before = self._latest_score(recommendation_id)
        recommendation.status = (
            RecommendationStatus.SENT.value if recommendation.sent_at is not None else RecommendationStatus.DRAFT.value
        )
        recommendation.archived_at = None
        recommendation.archived_by = None
        recommendation.archive_reason = None
        recommendation.archive_notes = None
        recommendation.revived_at = self.now()
        recommendation.revived_by = user_id
        if reset_metrics:
            recommendation.snoozed_until = None
            recommendation.snooze_reason = None
        self.db.add(
            ArchiveHistoryEntry(
                recommendation_id=recommendation_id,
                action=ArchiveAction.REVIVED.value,
                notes="Metrics reset for fresh scoring" if reset_metrics else "Revived without metric reset",
                confidence_score_at_action=score_before,
                performed_by=user_id,
                created_at=self.now(),
            )
        )
        self.commit()
        logger.info(
            "lifecycle.revived",
            extra={"event": "lifecycle.revived", "recommendation_id": recommendation_id, "reset_metrics": reset_metrics},
        )

        result = self._rescore(recommendation_id)
        self.db.refresh(recommendation)
        return recommendation, result

    def _pricing(self, recommendation_id: str) -> PricingTotals:
        items = self.db.scalars(
            select(RecommendationItem).where(RecommendationItem.recommendation_id == recommendation_id)
        ).all()
        try:
            return compute_pricing_totals(list(items))
        except ComputationError as exc:
            logger.warning(
                "archive_analytics.unpriced_deal",
                extra={"event": "archive_analytics.unpriced_deal", "recommendation_id": recommendation_id, "error": str(exc)},
            )
            return PricingTotals(monthly_total=0.0, onetime_total=0.0)

    def get_archive_analytics(
        self,
        archived_after: datetime | None = None,
        archived_before: datetime | None = None,
    ) -> dict:
        """Lost revenue and deal counts for archived deals, grouped by archive reason."""
        query = select(Recommendation).where(
            Recommendation.status == RecommendationStatus.ARCHIVED.value,
            Recommendation.archived_at.is_not(None),
        )
        if archived_after is not None:
            query = query.where(Recommendation.archived_at >= archived_after)
        if archived_before is not None:
            query = query.where(Recommendation.archived_at <= archived_before)
        deals = self.db.scalars(query).all()

        breakdown: dict[str, ReasonBreakdown] = {}
        lost_mrr = 0.0
        lost_onetime = 0.0
        archive_ages: list[float] = []
        for deal in deals:
            totals = self._pricing(deal.id)
            lost_mrr += totals.monthly_total
            lost_onetime += totals.onetime_total
            if deal.sent_at is not None:
                archive_ages.append((deal.archived_at - deal.sent_at).total_seconds() / SECONDS_PER_DAY)
            if deal.archive_reason is None:
                continue
            bucket = breakdown.setdefault(deal.archive_reason, ReasonBreakdown(reason=deal.archive_reason))
            bucket.count += 1
            bucket.mrr_lost += totals.monthly_total
            bucket.onetime_lost += totals.onetime_total

        total = len(deals)
        reasons = sorted(breakdown.values(), key=lambda item: (-item.count, item.reason))
        for item in reasons:
            item.mrr_lost = round2(item.mrr_lost)
            item.onetime_lost = round2(item.onetime_lost)
            item.percentage = round(item.count / total * 100) if total else 0

        top = reasons[0] if reasons else None
        return {
            "total_archived": total,
            "lost_mrr": round2(lost_mrr),
            "lost_onetime": round2(lost_onetime),
            "avg_days_to_archive": round(sum(archive_ages) / len(archive_ages)) if archive_ages else 0,
            "top_reason": top.reason if top else None,
            "top_reason_percentage": top.percentage if top else 0,
            "reasons_breakdown": [
                {
                    "reason": item.reason,
                    "count": item.count,
                    "mrr_lost": item.mrr_lost,
                    "onetime_lost": item.onetime_lost,
                    "percentage": item.percentage,
                }
                for item in reasons
            ],
        }
