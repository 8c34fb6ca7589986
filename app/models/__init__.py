"""SQLAlchemy model package for the pipeline schema."""

from app.models.archive_history import ArchiveHistoryEntry
from app.models.base import Base
from app.models.call_score import RecommendationCallScore
from app.models.enums import (
    ACTIVE_SCORING_STATUSES,
    STATUS_TRANSITIONS,
    ArchiveAction,
    ArchiveReason,
    BudgetClarity,
    CommunicationDirection,
    Competition,
    Engagement,
    PlanFit,
    RecommendationStatus,
    ScoringRunType,
    TrackingEventType,
    TriggerSource,
)
from app.models.recommendation import Recommendation
from app.models.recommendation_communication import RecommendationCommunication
from app.models.recommendation_invite import RecommendationInvite
from app.models.recommendation_item import RecommendationItem
from app.models.score_event import ScoreEvent
from app.models.score_history import ScoreHistoryEntry
from app.models.scoring_run import ScoringRun
from app.models.setting import Setting

__all__ = [
    "ACTIVE_SCORING_STATUSES",
    "ArchiveAction",
    "ArchiveHistoryEntry",
    "ArchiveReason",
    "Base",
    "BudgetClarity",
    "CommunicationDirection",
    "Competition",
    "Engagement",
    "PlanFit",
    "Recommendation",
    "RecommendationCallScore",
    "RecommendationCommunication",
    "RecommendationInvite",
    "RecommendationItem",
    "RecommendationStatus",
    "ScoreEvent",
    "ScoreHistoryEntry",
    "ScoringRun",
    "ScoringRunType",
    "STATUS_TRANSITIONS",
    "Setting",
    "TrackingEventType",
    "TriggerSource",
]
