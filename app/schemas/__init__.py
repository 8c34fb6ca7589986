"""Pydantic schema package for API contracts."""

from app.schemas.pipeline import (
    BatchRecalculateResponse,
    BatchSummary,
    CallScoresResponse,
    CallScoresUpdateRequest,
    CommunicationCreateRequest,
    EmailTrackingEvent,
    RecalculateRequest,
    ScoreHistoryItem,
    ScoreHistoryResponse,
    ScoreResult,
    SingleRecalculateResponse,
    SnoozeRequest,
    SnoozeResponse,
)
from app.schemas.scoring import DEFAULT_SCORING_CONFIG, ScoringConfig

__all__ = [
    "BatchRecalculateResponse",
    "BatchSummary",
    "CallScoresResponse",
    "CallScoresUpdateRequest",
    "CommunicationCreateRequest",
    "DEFAULT_SCORING_CONFIG",
    "EmailTrackingEvent",
    "RecalculateRequest",
    "ScoreHistoryItem",
    "ScoreHistoryResponse",
    "ScoreResult",
    "ScoringConfig",
    "SingleRecalculateResponse",
    "SnoozeRequest",
    "SnoozeResponse",
]
