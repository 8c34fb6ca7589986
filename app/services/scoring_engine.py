"""Pipeline confidence scoring engine.

Pure functions only: no database, no clock. Every time comparison is made
against the ``now`` carried on the input so results are reproducible.

Flow for an active deal:
    base score (call factors or default)
    - email-not-opened, proposal-not-viewed and silence penalties
    + multi-invite bonus
    = clamped 0..100 confidence score, mapped linearly to a percent.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from app.models.enums import RecommendationStatus
from app.schemas.scoring import PenaltyConfig, ScoringConfig

SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_DAY = SECONDS_PER_HOUR * 24


@dataclass(frozen=True)
class CallScoreInputs:
    budget_clarity: str | None = None
    competition: str | None = None
    engagement: str | None = None
    plan_fit: str | None = None


@dataclass(frozen=True)
class DealData:
    status: str
    sent_at: datetime | None
    monthly_total: float
    onetime_total: float
    snoozed_until: datetime | None = None
    revived_at: datetime | None = None


@dataclass(frozen=True)
class InviteMilestones:
    first_email_opened_at: datetime | None = None
    first_account_created_at: datetime | None = None
    first_proposal_viewed_at: datetime | None = None


@dataclass(frozen=True)
class InviteStats:
    total_invites: int = 0
    opened_count: int = 0
    accounts_created_count: int = 0
    viewed_count: int = 0


@dataclass(frozen=True)
class CommunicationData:
    last_prospect_contact_at: datetime | None = None
    last_team_contact_at: datetime | None = None
    followup_count_since_last_reply: int = 0


@dataclass(frozen=True)
class ScoringInput:
    deal: DealData
    call_scores: CallScoreInputs | None
    milestones: InviteMilestones
    invite_stats: InviteStats
    communications: CommunicationData
    config: ScoringConfig
    now: datetime


@dataclass
class ScoringResult:
    confidence_score: int
    confidence_percent: float
    weighted_monthly: float
    weighted_onetime: float
    base_score: int
    total_penalties: float
    total_bonus: float
    penalty_breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def _round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round2(value: float) -> float:
    """Round to cents, half away from zero."""
    return _round_half_up(value, 2)


def clamp(value: float, lower: float, upper: float) -> float:
    return min(upper, max(lower, value))


def days_between(start: datetime | None, end: datetime) -> int:
    """Whole days elapsed; zero when ``start`` is missing or in the future."""
    if start is None:
        return 0
    return max(0, int((end - start).total_seconds() // SECONDS_PER_DAY))


def hours_between(start: datetime | None, end: datetime) -> int:
    """Whole hours elapsed; zero when ``start`` is missing or in the future."""
    if start is None:
        return 0
    return max(0, int((end - start).total_seconds() // SECONDS_PER_HOUR))


def score_to_percent(confidence_score: int) -> float:
    """Linear score -> probability map used for every weighted figure."""
    return round2(clamp(confidence_score, 0, 100) / 100)


def _empty_breakdown() -> dict[str, float]:
    return {"email_not_opened": 0.0, "proposal_not_viewed": 0.0, "silence": 0.0, "multi_invite_bonus": 0.0}


def penalty_anchor(anchor: datetime | None, deal: DealData, now: datetime) -> datetime | None:
    """Move a decay anchor past an expired snooze or a revival, whichever is later."""
    if anchor is None:
        return None
    shifted = anchor
    if deal.revived_at is not None and deal.revived_at > shifted:
        shifted = deal.revived_at
    if deal.snoozed_until is not None and deal.snoozed_until <= now and deal.snoozed_until > shifted:
        shifted = deal.snoozed_until
    return shifted


def compute_base_score(call_scores: CallScoreInputs, config: ScoringConfig) -> float:
    """Sum of factor multiplier x factor weight; unknown or unset factors count as zero."""
    weights = config.call_weights
    mappings = config.call_score_mappings
    total = 0.0
    for factor in ("budget_clarity", "competition", "engagement", "plan_fit"):
        option = getattr(call_scores, factor)
        multiplier = getattr(mappings, factor).get(option, 0.0) if option else 0.0
        total += multiplier * getattr(weights, factor)
    return total


def compute_email_not_opened_penalty(
    sent_at: datetime | None,
    milestones: InviteMilestones,
    config: PenaltyConfig,
    now: datetime,
) -> float:
    if milestones.first_email_opened_at is not None or sent_at is None:
        return 0.0

    hours_elapsed = hours_between(sent_at, now)
    grace_hours = config.grace_period_hours if config.grace_period_hours is not None else 24
    if hours_elapsed <= grace_hours:
        return 0.0

    days_past_grace = (hours_elapsed - grace_hours) / 24
    return min(days_past_grace * config.daily_penalty, config.max_penalty)


def compute_proposal_not_viewed_penalty(
    milestones: InviteMilestones,
    config: PenaltyConfig,
    now: datetime,
    anchor_override: datetime | None = None,
) -> float:
    """Decay for an opened-but-unviewed proposal.

    Anchored on the first sign of engagement (email open or account
    creation). Before that the email-not-opened penalty owns the decay.
    """
    if milestones.first_proposal_viewed_at is not None:
        return 0.0

    anchors = [a for a in (milestones.first_email_opened_at, milestones.first_account_created_at) if a]
    if not anchors:
        return 0.0

    anchor = anchor_override or min(anchors)
    hours_elapsed = hours_between(anchor, now)
    grace_hours = config.grace_period_hours if config.grace_period_hours is not None else 48
    if hours_elapsed <= grace_hours:
        return 0.0

    days_past_grace = (hours_elapsed - grace_hours) / 24
    return min(days_past_grace * config.daily_penalty, config.max_penalty)


def compute_silence_penalty(
    sent_at: datetime | None,
    communications: CommunicationData,
    config: PenaltyConfig,
    now: datetime,
) -> float:
    """Slow decay for deals where the prospect has gone quiet.

    Unanswered follow-ups at or above the threshold accelerate the daily rate.
    """
    if sent_at is None:
        return 0.0

    anchor = communications.last_prospect_contact_at or sent_at
    days_elapsed = days_between(anchor, now)
    grace_days = config.grace_period_days if config.grace_period_days is not None else 5
    if days_elapsed <= grace_days:
        return 0.0

    daily = config.daily_penalty
    threshold = config.followup_acceleration_threshold if config.followup_acceleration_threshold is not None else 2
    multiplier = config.followup_acceleration_multiplier if config.followup_acceleration_multiplier is not None else 1.5
    if communications.followup_count_since_last_reply >= threshold:
        daily *= multiplier

    return min((days_elapsed - grace_days) * daily, config.max_penalty)


def compute_multi_invite_bonus(invite_stats: InviteStats, config: ScoringConfig) -> float:
    if invite_stats.total_invites <= 1:
        return 0.0

    bonus = 0.0
    if invite_stats.opened_count >= invite_stats.total_invites:
        bonus += config.multi_invite_bonus.all_opened_bonus
    if invite_stats.viewed_count >= invite_stats.total_invites:
        bonus += config.multi_invite_bonus.all_viewed_bonus
    return bonus


def _fixed_result(deal: DealData, score: int) -> ScoringResult:
    percent = score_to_percent(score)
    return ScoringResult(
        confidence_score=score,
        confidence_percent=percent,
        weighted_monthly=round2(deal.monthly_total * percent),
        weighted_onetime=round2(deal.onetime_total * percent),
        base_score=score,
        total_penalties=0.0,
        total_bonus=0.0,
        penalty_breakdown=_empty_breakdown(),
    )


def compute_pipeline_score(scoring_input: ScoringInput) -> ScoringResult:
    """Score one deal. Deterministic for a given input."""
    deal = scoring_input.deal
    config = scoring_input.config
    now = scoring_input.now

    if deal.status == RecommendationStatus.ARCHIVED.value:
        return _fixed_result(deal, 0)
    if deal.status == RecommendationStatus.ACCEPTED.value:
        return _fixed_result(deal, 100)

    if scoring_input.call_scores is not None:
        base_score = compute_base_score(scoring_input.call_scores, config)
    else:
        base_score = config.default_base_score

    if deal.status == RecommendationStatus.DRAFT.value:
        result = _fixed_result(deal, int(_round_half_up(clamp(base_score, 0, 100))))
        result.base_score = int(_round_half_up(base_score))
        return result

    snoozed = deal.snoozed_until is not None and deal.snoozed_until > now
    if snoozed:
        email_penalty = view_penalty = silence_penalty = 0.0
    else:
        sent_at = penalty_anchor(deal.sent_at, deal, now)
        engagement_anchors = [
            a
            for a in (
                scoring_input.milestones.first_email_opened_at,
                scoring_input.milestones.first_account_created_at,
            )
            if a
        ]
        view_anchor = penalty_anchor(min(engagement_anchors), deal, now) if engagement_anchors else None
        communications = scoring_input.communications
        if communications.last_prospect_contact_at is not None:
            communications = CommunicationData(
                last_prospect_contact_at=penalty_anchor(communications.last_prospect_contact_at, deal, now),
                last_team_contact_at=communications.last_team_contact_at,
                followup_count_since_last_reply=communications.followup_count_since_last_reply,
            )

        penalties = config.penalties
        email_penalty = compute_email_not_opened_penalty(
            sent_at, scoring_input.milestones, penalties.email_not_opened, now
        )
        view_penalty = compute_proposal_not_viewed_penalty(
            scoring_input.milestones, penalties.proposal_not_viewed, now, anchor_override=view_anchor
        )
        silence_penalty = compute_silence_penalty(sent_at, communications, penalties.silence, now)

    total_penalties = email_penalty + view_penalty + silence_penalty
    bonus = compute_multi_invite_bonus(scoring_input.invite_stats, config)

    confidence_score = int(_round_half_up(clamp(base_score - total_penalties + bonus, 0, 100)))
    confidence_percent = score_to_percent(confidence_score)

    return ScoringResult(
        confidence_score=confidence_score,
        confidence_percent=confidence_percent,
        weighted_monthly=round2(deal.monthly_total * confidence_percent),
        weighted_onetime=round2(deal.onetime_total * confidence_percent),
        base_score=int(_round_half_up(base_score)),
        total_penalties=round2(total_penalties),
        total_bonus=bonus,
        penalty_breakdown={
            "email_not_opened": round2(email_penalty),
            "proposal_not_viewed": round2(view_penalty),
            "silence": round2(silence_penalty),
            "multi_invite_bonus": bonus,
        },
    )
