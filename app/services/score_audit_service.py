"""Score audit trail: history entries with deltas between consecutive rescoring events."""

from __future__ import annotations

from app.models import ScoreHistoryEntry
from app.services.base_service import BaseService
from app.services.pipeline_scorer import PipelineScorer
from app.services.scoring_engine import round2

# (audit field name, breakdown key or None for top-level column)
_TRACKED_FIELDS = (
    ("base_score", None),
    ("penalty_email_not_opened", "email_not_opened"),
    ("penalty_proposal_not_viewed", "proposal_not_viewed"),
    ("penalty_silence", "silence"),
    ("multi_invite_bonus", "multi_invite_bonus"),
    ("total_bonus", None),
)


def _field_value(entry: ScoreHistoryEntry, field_name: str, breakdown_key: str | None) -> float:
    if breakdown_key is None:
        return float(getattr(entry, field_name) or 0)
    return float((entry.breakdown or {}).get(breakdown_key, 0) or 0)


def compute_deltas(previous: ScoreHistoryEntry, current: ScoreHistoryEntry) -> dict:
    changes = []
    for field_name, breakdown_key in _TRACKED_FIELDS:
        before = _field_value(previous, field_name, breakdown_key)
        after = _field_value(current, field_name, breakdown_key)
        if before != after:
            changes.append({"field": field_name, "from": before, "to": after, "delta": round2(after - before)})

    return {
        "score_delta": current.confidence_score - previous.confidence_score,
        "weighted_monthly_delta": round2(current.weighted_monthly - previous.weighted_monthly),
        "changes": changes,
    }


class ScoreAuditService(BaseService):
    def get_audit_trail(self, recommendation_id: str) -> list[dict]:
        history = PipelineScorer(self.db, clock=self.clock).get_history(recommendation_id)

        events: list[dict] = []
        previous: ScoreHistoryEntry | None = None
        for entry in history:
            event = {
                "id": entry.id,
                "scored_at": entry.scored_at,
                "trigger_source": entry.trigger_source,
                "confidence_score": entry.confidence_score,
                "confidence_percent": entry.confidence_percent,
                "weighted_monthly": entry.weighted_monthly,
                "weighted_onetime": entry.weighted_onetime,
                "base_score": entry.base_score,
                "total_penalties": entry.total_penalties,
                "total_bonus": entry.total_bonus,
                "breakdown": entry.breakdown,
                "deltas": compute_deltas(previous, entry) if previous is not None else None,
            }
            events.append(event)
            previous = entry
        return events
