"""Pipeline revenue projection buckets."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime

from sqlalchemy import and_, func, select

from app.core.exceptions import ComputationError
from app.models import Recommendation, RecommendationItem, RecommendationStatus, ScoreHistoryEntry
from app.services.base_service import BaseService
from app.services.scoring_engine import days_between
from app.services.scoring_input_service import compute_pricing_totals

logger = logging.getLogger(__name__)

CLOSING_SOON_MIN_SCORE = 70
CLOSING_SOON_MIN_AGE_DAYS = 14
IN_PIPELINE_MIN_SCORE = 30
CLOSING_SOON_TABLE_LIMIT = 10


@dataclass
class BucketStats:
    weighted_mrr: float = 0.0
    raw_mrr: float = 0.0
    deal_count: int = 0
    avg_confidence: int = 0
    _confidence_sum: int = field(default=0, repr=False)

    def add(self, weighted: float, raw: float, confidence: int) -> None:
        self.weighted_mrr += weighted
        self.raw_mrr += raw
        self.deal_count += 1
        self._confidence_sum += confidence

    def finalize(self) -> dict:
        self.avg_confidence = round(self._confidence_sum / self.deal_count) if self.deal_count else 0
        return {
            "weighted_mrr": round(self.weighted_mrr),
            "raw_mrr": round(self.raw_mrr),
            "deal_count": self.deal_count,
            "avg_confidence": self.avg_confidence,
        }


@dataclass
class ClosingSoonDeal:
    id: str
    client_name: str
    predicted_monthly: float
    confidence_score: int
    weighted_monthly: float
    age_days: int


class RevenueSummaryService(BaseService):
    """Bucket every sent deal by its latest confidence score."""

    def _latest_entries(self, recommendation_ids: list[str]) -> dict[str, ScoreHistoryEntry]:
        if not recommendation_ids:
            return {}
        newest = (
            select(
                ScoreHistoryEntry.recommendation_id,
                func.max(ScoreHistoryEntry.scored_at).label("scored_at"),
            )
            .where(ScoreHistoryEntry.recommendation_id.in_(recommendation_ids))
            .group_by(ScoreHistoryEntry.recommendation_id)
            .subquery()
        )
        entries = self.db.scalars(
            select(ScoreHistoryEntry)
            .join(
                newest,
                and_(
                    ScoreHistoryEntry.recommendation_id == newest.c.recommendation_id,
                    ScoreHistoryEntry.scored_at == newest.c.scored_at,
                ),
            )
            .order_by(ScoreHistoryEntry.sequence.asc())
        ).all()
        # Rows sharing the newest scored_at resolve to the highest sequence.
        latest: dict[str, ScoreHistoryEntry] = {}
        for entry in entries:
            latest[entry.recommendation_id] = entry
        return latest

    def _raw_monthly(self, recommendation: Recommendation) -> float:
        items = self.db.scalars(
            select(RecommendationItem).where(RecommendationItem.recommendation_id == recommendation.id)
        ).all()
        try:
            return compute_pricing_totals(list(items)).monthly_total
        except ComputationError as exc:
            logger.warning(
                "revenue_summary.unpriced_deal",
                extra={"event": "revenue_summary.unpriced_deal", "recommendation_id": recommendation.id, "error": str(exc)},
            )
            return 0.0

    def get_summary(self, current_mrr: float = 0.0) -> dict:
        now = self.now()
        deals = self.db.scalars(
            select(Recommendation).where(Recommendation.status == RecommendationStatus.SENT.value)
        ).all()
        latest = self._latest_entries([deal.id for deal in deals])

        closing_soon = BucketStats()
        in_pipeline = BucketStats()
        at_risk = BucketStats()
        on_hold = BucketStats()
        closing_soon_deals: list[ClosingSoonDeal] = []
        last_updated: datetime | None = None

        rows = []
        for deal in deals:
            entry = latest.get(deal.id)
            confidence = entry.confidence_score if entry else 0
            rows.append((confidence, deal, entry))
        rows.sort(key=lambda row: row[0], reverse=True)

        for confidence, deal, entry in rows:
            weighted = entry.weighted_monthly if entry else 0.0
            raw = self._raw_monthly(deal)
            age_days = days_between(deal.revived_at or deal.sent_at, now)
            if entry is not None and (last_updated is None or entry.scored_at > last_updated):
                last_updated = entry.scored_at

            if deal.snoozed_until is not None and deal.snoozed_until > now:
                on_hold.add(weighted, raw, confidence)
            elif confidence >= CLOSING_SOON_MIN_SCORE and age_days >= CLOSING_SOON_MIN_AGE_DAYS:
                closing_soon.add(weighted, raw, confidence)
                if len(closing_soon_deals) < CLOSING_SOON_TABLE_LIMIT:
                    closing_soon_deals.append(
                        ClosingSoonDeal(
                            id=deal.id,
                            client_name=deal.client_name,
                            predicted_monthly=raw,
                            confidence_score=confidence,
                            weighted_monthly=weighted,
                            age_days=age_days,
                        )
                    )
            elif confidence >= IN_PIPELINE_MIN_SCORE:
                in_pipeline.add(weighted, raw, confidence)
            else:
                at_risk.add(weighted, raw, confidence)

        closing_soon_payload = closing_soon.finalize()
        in_pipeline_payload = in_pipeline.finalize()
        on_hold_payload = on_hold.finalize()
        on_hold_payload.pop("avg_confidence")

        # At-risk and on-hold deals stay out of the projection.
        projected = current_mrr + closing_soon_payload["weighted_mrr"] + in_pipeline_payload["weighted_mrr"]
        return {
            "current_mrr": current_mrr,
            "closing_soon": closing_soon_payload,
            "in_pipeline": in_pipeline_payload,
            "at_risk": at_risk.finalize(),
            "on_hold": on_hold_payload,
            "projected_mrr": round(projected),
            "potential_growth": round(projected - current_mrr),
            "last_updated": last_updated,
            "closing_soon_deals": [asdict(deal) for deal in closing_soon_deals],
        }
