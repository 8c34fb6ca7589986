"""Pipeline scoring request/response schemas for API contracts."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.enums import (
    ArchiveReason,
    BudgetClarity,
    CommunicationDirection,
    Competition,
    Engagement,
    PlanFit,
    RecommendationStatus,
    TrackingEventType,
)


def naive_utc(value: datetime | None) -> datetime | None:
    """Stored timestamps are naive UTC; convert aware inputs on the way in."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class RecalculateRequest(BaseModel):
    recommendation_id: str | None = Field(default=None, min_length=1, max_length=64)
    recommendation_ids: list[str] | None = Field(default=None, max_length=500)


class ScoreResult(BaseModel):
    recommendation_id: str
    history_id: str
    confidence_score: int = Field(ge=0, le=100)
    confidence_percent: float = Field(ge=0, le=1)
    weighted_monthly: float
    weighted_onetime: float
    base_score: int
    total_penalties: float
    total_bonus: float
    penalty_breakdown: dict[str, float]
    trigger_source: str
    scored_at: datetime


class SingleRecalculateResponse(BaseModel):
    recommendation_id: str
    result: ScoreResult | None = None
    skipped: bool = False


class BatchSummary(BaseModel):
    total: int
    processed: int
    skipped: int
    failed: int


class BatchRecalculateResponse(BaseModel):
    summary: BatchSummary
    results: list[ScoreResult | None]


class ScoreHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    recommendation_id: str
    confidence_score: int
    confidence_percent: float
    weighted_monthly: float
    weighted_onetime: float
    trigger_source: str
    scored_at: datetime


class ScoreHistoryResponse(BaseModel):
    history: list[ScoreHistoryItem]


class CallScoresUpdateRequest(BaseModel):
    budget_clarity: BudgetClarity | None = None
    competition: Competition | None = None
    engagement: Engagement | None = None
    plan_fit: PlanFit | None = None


class CallScoresResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recommendation_id: str
    budget_clarity: str | None = None
    competition: str | None = None
    engagement: str | None = None
    plan_fit: str | None = None
    updated_at: datetime | None = None


class CommunicationCreateRequest(BaseModel):
    direction: CommunicationDirection
    channel: str = Field(default="email", min_length=2, max_length=30)
    summary: str | None = Field(default=None, max_length=10000)
    contact_at: datetime | None = None

    @field_validator("contact_at")
    @classmethod
    def normalize_contact_at(cls, value: datetime | None) -> datetime | None:
        return naive_utc(value)


class SnoozeRequest(BaseModel):
    snoozed_until: datetime
    reason: str | None = Field(default=None, max_length=2000)

    @field_validator("snoozed_until")
    @classmethod
    def normalize_snoozed_until(cls, value: datetime | None) -> datetime | None:
        return naive_utc(value)


class SnoozeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    snoozed_until: datetime | None = None
    snooze_reason: str | None = None
    confidence_score: int | None = None


class EmailTrackingEvent(BaseModel):
    invite_id: str = Field(min_length=1, max_length=64)
    event: TrackingEventType
    occurred_at: datetime | None = None

    @field_validator("occurred_at")
    @classmethod
    def normalize_occurred_at(cls, value: datetime | None) -> datetime | None:
        return naive_utc(value)


class ArchiveRequest(BaseModel):
    reason: ArchiveReason
    notes: str | None = Field(default=None, max_length=2000)


class StatusChangeRequest(BaseModel):
    status: RecommendationStatus


class LifecycleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    sent_at: datetime | None = None
    archived_at: datetime | None = None
    archive_reason: str | None = None
    archive_notes: str | None = None
    revived_at: datetime | None = None
