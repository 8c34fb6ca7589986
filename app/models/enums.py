"""Canonical enum values for the pipeline schema."""

from __future__ import annotations

import enum


class RecommendationStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    DECLINED = "declined"
    ACCEPTED = "accepted"
    ARCHIVED = "archived"


# Only these statuses are rescored; everything else is either not yet in the
# pipeline or already decided.
ACTIVE_SCORING_STATUSES = (RecommendationStatus.SENT.value, RecommendationStatus.DECLINED.value)


class TriggerSource(str, enum.Enum):
    MANUAL_REFRESH = "manual_refresh"
    WEBHOOK = "webhook"
    CRON = "cron"
    UI_ACTION = "ui_action"


class CommunicationDirection(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class BudgetClarity(str, enum.Enum):
    CLEAR = "clear"
    VAGUE = "vague"
    NONE = "none"
    NO_BUDGET = "no_budget"


class Competition(str, enum.Enum):
    NONE = "none"
    SOME = "some"
    MANY = "many"


class Engagement(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PlanFit(str, enum.Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"
    POOR = "poor"


class TrackingEventType(str, enum.Enum):
    OPENED = "opened"
    ACCOUNT_CREATED = "account_created"
    VIEWED = "viewed"


class ArchiveReason(str, enum.Enum):
    WENT_DARK = "went_dark"
    BUDGET = "budget"
    TIMING = "timing"
    CHOSE_COMPETITOR = "chose_competitor"
    HANDLING_IN_HOUSE = "handling_in_house"
    NOT_A_FIT = "not_a_fit"
    KEY_CONTACT_LEFT = "key_contact_left"
    BUSINESS_CLOSED = "business_closed"
    DUPLICATE = "duplicate"
    OTHER = "other"


class ArchiveAction(str, enum.Enum):
    ARCHIVED = "archived"
    REVIVED = "revived"


# Allowed manual status changes. Archiving and reviving have their own endpoints.
STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    RecommendationStatus.DRAFT.value: (RecommendationStatus.SENT.value,),
    RecommendationStatus.SENT.value: (RecommendationStatus.ACCEPTED.value, RecommendationStatus.DECLINED.value),
    RecommendationStatus.DECLINED.value: (RecommendationStatus.SENT.value,),
    RecommendationStatus.ACCEPTED.value: (),
    RecommendationStatus.ARCHIVED.value: (),
}


class ScoringRunType(str, enum.Enum):
    EVENT_QUEUE = "event_queue"
    DAILY_CRON = "daily_cron"
