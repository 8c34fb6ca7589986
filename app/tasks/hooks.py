"""Lifecycle hooks for queue task execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.core.logging import LogContext, build_log_event


def _context(task_name: str, context: dict[str, Any]) -> LogContext:
    return LogContext(
        user_id=str(context.get("user_id")) if context.get("user_id") is not None else None,
        recommendation_id=context.get("recommendation_id"),
        run_type=context.get("run_type"),
        task_name=task_name,
        trace_id=context.get("trace_id"),
    )


def before_task(task_name: str, context: dict[str, Any]) -> dict[str, Any]:
    """Build pre-task log payload."""
    return build_log_event(event="task.start", context=_context(task_name, context))


def after_task(task_name: str, context: dict[str, Any], status: str, **fields: Any) -> dict[str, Any]:
    """Build post-task log payload."""
    return build_log_event(
        event="task.finish",
        context=_context(task_name, context),
        status=status,
        finished_at=datetime.now(timezone.utc).isoformat(),
        **fields,
    )
