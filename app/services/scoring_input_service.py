"""Assembles scoring inputs for one recommendation from the database."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select

from app.core.exceptions import ComputationError, NotFoundError
from app.models import (
    CommunicationDirection,
    Recommendation,
    RecommendationCallScore,
    RecommendationCommunication,
    RecommendationInvite,
    RecommendationItem,
)
from app.schemas.scoring import ScoringConfig
from app.services.base_service import BaseService
from app.services.scoring_config_service import ScoringConfigService
from app.services.scoring_engine import (
    CallScoreInputs,
    CommunicationData,
    DealData,
    InviteMilestones,
    InviteStats,
    ScoringInput,
)


@dataclass(frozen=True)
class PricingTotals:
    monthly_total: float
    onetime_total: float


def compute_pricing_totals(items: list[RecommendationItem]) -> PricingTotals:
    """Sum priced line items, rejecting rows that cannot be priced."""
    if not items:
        raise ComputationError("recommendation has no priced line items")

    monthly = 0.0
    onetime = 0.0
    for item in items:
        quantity = item.quantity if item.quantity is not None else 1
        if quantity < 1:
            raise ComputationError(f"line item {item.id} has invalid quantity {quantity}")
        if item.is_free:
            continue
        if item.monthly_price is None and item.onetime_price is None:
            raise ComputationError(f"line item {item.id} has no monthly or one-time price")
        for label, price in (("monthly", item.monthly_price), ("one-time", item.onetime_price)):
            if price is not None and float(price) < 0:
                raise ComputationError(f"line item {item.id} has negative {label} price")
        monthly += float(item.monthly_price or 0) * quantity
        onetime += float(item.onetime_price or 0) * quantity

    return PricingTotals(monthly_total=round(monthly, 2), onetime_total=round(onetime, 2))


def _earliest(values: list[datetime | None]) -> datetime | None:
    present = [v for v in values if v is not None]
    return min(present) if present else None


class ScoringInputService(BaseService):
    def __init__(self, db, clock=None, config_service: ScoringConfigService | None = None) -> None:
        super().__init__(db, clock=clock)
        self.config_service = config_service or ScoringConfigService(db)

    def get_recommendation(self, recommendation_id: str) -> Recommendation:
        recommendation = self.db.get(Recommendation, recommendation_id)
        if recommendation is None:
            raise NotFoundError(f"Recommendation not found: {recommendation_id}")
        return recommendation

    def _call_scores(self, recommendation_id: str) -> CallScoreInputs | None:
        row = self.db.scalars(
            select(RecommendationCallScore).where(RecommendationCallScore.recommendation_id == recommendation_id)
        ).first()
        if row is None:
            return None
        return CallScoreInputs(
            budget_clarity=row.budget_clarity,
            competition=row.competition,
            engagement=row.engagement,
            plan_fit=row.plan_fit,
        )

    def _invites(self, recommendation_id: str) -> tuple[InviteMilestones, InviteStats]:
        invites = self.db.scalars(
            select(RecommendationInvite).where(RecommendationInvite.recommendation_id == recommendation_id)
        ).all()
        milestones = InviteMilestones(
            first_email_opened_at=_earliest([i.email_opened_at for i in invites]),
            first_account_created_at=_earliest([i.account_created_at for i in invites]),
            first_proposal_viewed_at=_earliest([i.viewed_at for i in invites]),
        )
        stats = InviteStats(
            total_invites=len(invites),
            opened_count=sum(1 for i in invites if i.email_opened_at),
            accounts_created_count=sum(1 for i in invites if i.account_created_at),
            viewed_count=sum(1 for i in invites if i.viewed_at),
        )
        return milestones, stats

    def _communications(self, recommendation_id: str) -> CommunicationData:
        rows = self.db.scalars(
            select(RecommendationCommunication)
            .where(RecommendationCommunication.recommendation_id == recommendation_id)
            .order_by(RecommendationCommunication.contact_at.desc())
        ).all()
        inbound = [r for r in rows if r.direction == CommunicationDirection.INBOUND.value]
        outbound = [r for r in rows if r.direction == CommunicationDirection.OUTBOUND.value]

        last_prospect = inbound[0].contact_at if inbound else None
        last_team = outbound[0].contact_at if outbound else None
        if last_prospect is not None:
            followups = sum(1 for r in outbound if r.contact_at > last_prospect)
        else:
            followups = len(outbound)

        return CommunicationData(
            last_prospect_contact_at=last_prospect,
            last_team_contact_at=last_team,
            followup_count_since_last_reply=followups,
        )

    def assemble(
        self,
        recommendation_id: str,
        now: datetime | None = None,
        config: ScoringConfig | None = None,
    ) -> ScoringInput:
        recommendation = self.get_recommendation(recommendation_id)
        items = self.db.scalars(
            select(RecommendationItem).where(RecommendationItem.recommendation_id == recommendation_id)
        ).all()
        totals = compute_pricing_totals(list(items))
        milestones, invite_stats = self._invites(recommendation_id)

        return ScoringInput(
            deal=DealData(
                status=recommendation.status,
                sent_at=recommendation.sent_at,
                monthly_total=totals.monthly_total,
                onetime_total=totals.onetime_total,
                snoozed_until=recommendation.snoozed_until,
                revived_at=recommendation.revived_at,
            ),
            call_scores=self._call_scores(recommendation_id),
            milestones=milestones,
            invite_stats=invite_stats,
            communications=self._communications(recommendation_id),
            config=config or self.config_service.get_config(),
            now=now or self.now(),
        )
