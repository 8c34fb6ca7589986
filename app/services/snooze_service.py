"""Snooze and unsnooze pipeline deals."""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models import ACTIVE_SCORING_STATUSES, Recommendation, TriggerSource
from app.services.base_service import BaseService
from app.services.pipeline_scorer import PipelineScorer, RecalculationResult

logger = logging.getLogger(__name__)


class SnoozeService(BaseService):
    """Pausing a deal freezes its decay penalties until ``snoozed_until``."""

    def _get_recommendation(self, recommendation_id: str) -> Recommendation:
        recommendation = self.db.query(Recommendation).filter(Recommendation.id == recommendation_id).first()
        if recommendation is None:
            raise NotFoundError(f"Recommendation not found: {recommendation_id}")
        return recommendation

    def _rescore(self, recommendation_id: str) -> RecalculationResult | None:
        scorer = PipelineScorer(self.db, clock=self.clock)
        return scorer.recalculate_after_change(recommendation_id, TriggerSource.UI_ACTION)

    def snooze(
        self,
        recommendation_id: str,
        snoozed_until: datetime,
        reason: str | None = None,
    ) -> tuple[Recommendation, RecalculationResult | None]:
        if snoozed_until <= self.now():
            raise ValidationError("snoozed_until must be in the future")

        recommendation = self._get_recommendation(recommendation_id)
        if recommendation.status not in ACTIVE_SCORING_STATUSES:
            raise InvalidStateError(
                f"Cannot snooze a deal with status '{recommendation.status}'; only sent or declined deals can be snoozed"
            )

        recommendation.snoozed_until = snoozed_until
        recommendation.snooze_reason = reason
        self.commit()
        logger.info(
            "snooze.applied",
            extra={
                "event": "snooze.applied",
                "recommendation_id": recommendation_id,
                "snoozed_until": snoozed_until.isoformat(),
            },
        )

        result = self._rescore(recommendation_id)
        self.db.refresh(recommendation)
        return recommendation, result

    def unsnooze(self, recommendation_id: str) -> tuple[Recommendation, RecalculationResult | None]:
        recommendation = self._get_recommendation(recommendation_id)
        if recommendation.snoozed_until is None:
            raise InvalidStateError("Deal is not currently snoozed")

        recommendation.snoozed_until = None
        recommendation.snooze_reason = None
        self.commit()
        logger.info("snooze.cancelled", extra={"event": "snooze.cancelled", "recommendation_id": recommendation_id})

        result = self._rescore(recommendation_id)
        self.db.refresh(recommendation)
        return recommendation, result
