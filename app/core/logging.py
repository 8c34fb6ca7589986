"""Structured logging helpers for scoring jobs and request handlers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    user_id: str | None = None
    recommendation_id: str | None = None
    run_type: str | None = None
    task_name: str | None = None
    trace_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "user_id": context.user_id,
        "recommendation_id": context.recommendation_id,
        "run_type": context.run_type,
        "task_name": context.task_name,
        "trace_id": context.trace_id,
    }
    payload.update(fields)
    return payload
