"""Scoring policy schema.

The policy lives in the ``settings`` table as JSON, so it is validated here at
the boundary before the engine ever sees it.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CallWeights(BaseModel):
    budget_clarity: float = Field(default=25, ge=0)
    competition: float = Field(default=20, ge=0)
    engagement: float = Field(default=25, ge=0)
    plan_fit: float = Field(default=30, ge=0)


class CallScoreMappings(BaseModel):
    budget_clarity: dict[str, float] = Field(
        default_factory=lambda: {"clear": 1.0, "vague": 0.5, "none": 0.2, "no_budget": 0.0}
    )
    competition: dict[str, float] = Field(default_factory=lambda: {"none": 1.0, "some": 0.5, "many": 0.15})
    engagement: dict[str, float] = Field(default_factory=lambda: {"high": 1.0, "medium": 0.7, "low": 0.15})
    plan_fit: dict[str, float] = Field(
        default_factory=lambda: {"strong": 1.0, "medium": 0.65, "weak": 0.25, "poor": 0.0}
    )

    @model_validator(mode="after")
    def multipliers_are_fractions(self) -> "CallScoreMappings":
        for factor in ("budget_clarity", "competition", "engagement", "plan_fit"):
            for option, value in getattr(self, factor).items():
                if not 0 <= value <= 1:
                    raise ValueError(f"{factor}.{option} multiplier must be within [0, 1]")
        return self


class PenaltyConfig(BaseModel):
    grace_period_hours: float | None = Field(default=None, ge=0)
    grace_period_days: float | None = Field(default=None, ge=0)
    daily_penalty: float = Field(ge=0)
    max_penalty: float = Field(ge=0)
    followup_acceleration_threshold: int | None = Field(default=None, ge=0)
    followup_acceleration_multiplier: float | None = Field(default=None, ge=1)


class PenaltySet(BaseModel):
    email_not_opened: PenaltyConfig = Field(
        default_factory=lambda: PenaltyConfig(grace_period_hours=48, daily_penalty=0.5, max_penalty=25)
    )
    proposal_not_viewed: PenaltyConfig = Field(
        default_factory=lambda: PenaltyConfig(grace_period_hours=120, daily_penalty=0.5, max_penalty=20)
    )
    silence: PenaltyConfig = Field(
        default_factory=lambda: PenaltyConfig(
            grace_period_days=10,
            daily_penalty=1.2,
            max_penalty=60,
            followup_acceleration_threshold=3,
            followup_acceleration_multiplier=1.5,
        )
    )


class MultiInviteBonus(BaseModel):
    all_opened_bonus: float = Field(default=3, ge=0)
    all_viewed_bonus: float = Field(default=5, ge=0)


class ScoringConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    call_weights: CallWeights = Field(default_factory=CallWeights)
    call_score_mappings: CallScoreMappings = Field(default_factory=CallScoreMappings)
    penalties: PenaltySet = Field(default_factory=PenaltySet)
    multi_invite_bonus: MultiInviteBonus = Field(default_factory=MultiInviteBonus)
    default_base_score: float = Field(default=50, ge=0, le=100)


DEFAULT_SCORING_CONFIG = ScoringConfig()
