"""Call score capture for pipeline deals."""

from __future__ import annotations

import logging

from app.core.exceptions import NotFoundError
from app.models import Recommendation, RecommendationCallScore, TriggerSource
from app.services.base_service import BaseService
from app.services.pipeline_scorer import PipelineScorer, RecalculationResult

logger = logging.getLogger(__name__)

CALL_SCORE_FACTORS = ("budget_clarity", "competition", "engagement", "plan_fit")


class CallScoreService(BaseService):
    """Upsert rep-entered call factors and rescore the deal."""

    def get_call_scores(self, recommendation_id: str) -> RecommendationCallScore | None:
        if self.db.get(Recommendation, recommendation_id) is None:
            raise NotFoundError(f"Recommendation not found: {recommendation_id}")
        return (
            self.db.query(RecommendationCallScore)
            .filter(RecommendationCallScore.recommendation_id == recommendation_id)
            .first()
        )

    def upsert_call_scores(
        self,
        recommendation_id: str,
        factors: dict[str, str | None],
        user_id: str | None = None,
    ) -> tuple[RecommendationCallScore, RecalculationResult | None]:
        """Only the factors present in ``factors`` are changed; the rest keep their previous values."""
        row = self.get_call_scores(recommendation_id)
        if row is None:
            row = RecommendationCallScore(recommendation_id=recommendation_id, created_by=user_id)
            self.db.add(row)

        for factor in CALL_SCORE_FACTORS:
            if factor in factors:
                setattr(row, factor, factors[factor])
        row.updated_at = self.now()
        self.commit()
        self.db.refresh(row)

        logger.info(
            "call_scores.saved",
            extra={"event": "call_scores.saved", "recommendation_id": recommendation_id, "user_id": user_id},
        )
        scorer = PipelineScorer(self.db, clock=self.clock)
        result = scorer.recalculate_after_change(recommendation_id, TriggerSource.UI_ACTION)
        return row, result
