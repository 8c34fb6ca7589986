"""Communication logging and invite tracking for pipeline deals."""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.exceptions import NotFoundError, ValidationError
from app.models import (
    CommunicationDirection,
    Recommendation,
    RecommendationCommunication,
    RecommendationInvite,
    ScoreEvent,
    TrackingEventType,
    TriggerSource,
)
from app.services.base_service import BaseService
from app.services.pipeline_scorer import PipelineScorer, RecalculationResult

logger = logging.getLogger(__name__)

_TRACKING_COLUMNS = {
    TrackingEventType.OPENED.value: "email_opened_at",
    TrackingEventType.ACCOUNT_CREATED.value: "account_created_at",
    TrackingEventType.VIEWED.value: "viewed_at",
}


class ActivityService(BaseService):
    def _get_recommendation(self, recommendation_id: str) -> Recommendation:
        recommendation = self.db.get(Recommendation, recommendation_id)
        if recommendation is None:
            raise NotFoundError(f"Recommendation not found: {recommendation_id}")
        return recommendation

    def log_communication(
        self,
        recommendation_id: str,
        direction: str,
        channel: str = "email",
        summary: str | None = None,
        contact_at: datetime | None = None,
        user_id: str | None = None,
    ) -> tuple[RecommendationCommunication, RecalculationResult | None]:
        self._get_recommendation(recommendation_id)
        try:
            direction = CommunicationDirection(direction).value
        except ValueError as exc:
            raise ValidationError(f"Unknown communication direction: {direction}") from exc

        contact_at = contact_at or self.now()
        if contact_at > self.now():
            raise ValidationError("contact_at cannot be in the future")

        communication = RecommendationCommunication(
            recommendation_id=recommendation_id,
            direction=direction,
            channel=channel,
            contact_at=contact_at,
            summary=summary,
            logged_by=user_id,
        )
        self.db.add(communication)
        self.commit()
        self.db.refresh(communication)

        logger.info(
            "activity.communication_logged",
            extra={
                "event": "activity.communication_logged",
                "recommendation_id": recommendation_id,
                "direction": direction,
            },
        )
        scorer = PipelineScorer(self.db, clock=self.clock)
        result = scorer.recalculate_after_change(recommendation_id, TriggerSource.UI_ACTION)
        return communication, result

    def record_tracking_event(
        self,
        invite_id: str,
        event_type: str,
        occurred_at: datetime | None = None,
    ) -> ScoreEvent:
        """Stamp an invite milestone and queue the deal for rescoring.

        Milestones only move earlier: a later duplicate event keeps the first timestamp.
        """
        try:
            column = _TRACKING_COLUMNS[TrackingEventType(event_type).value]
        except ValueError as exc:
            raise ValidationError(f"Unknown tracking event: {event_type}") from exc

        invite = self.db.get(RecommendationInvite, invite_id)
        if invite is None:
            raise NotFoundError(f"Invite not found: {invite_id}")

        occurred_at = occurred_at or self.now()
        current = getattr(invite, column)
        if current is None or occurred_at < current:
            setattr(invite, column, occurred_at)

        event = ScoreEvent(
            recommendation_id=invite.recommendation_id,
            event_type=event_type,
            created_at=self.now(),
        )
        self.db.add(event)
        self.commit()
        self.db.refresh(event)

        logger.info(
            "activity.tracking_event_queued",
            extra={
                "event": "activity.tracking_event_queued",
                "recommendation_id": invite.recommendation_id,
                "tracking_event": event_type,
            },
        )
        return event
