"""Scheduled and on-demand pipeline scoring tasks."""

from __future__ import annotations

import logging
from typing import Any

from app.database.db import get_db_session
from app.models import TriggerSource
from app.services.pipeline_scorer import PipelineScorer
from app.tasks.celery_app import celery_app
from app.tasks.hooks import after_task, before_task
from app.utils.ids import new_trace_id

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="pipeline.daily_recalculation")
def daily_recalculation_task(self) -> dict[str, Any]:
    """Drain queued webhook events, then rescore stale deals."""
    context = {"run_type": "daily_cron", "trace_id": getattr(self.request, "id", None) or new_trace_id()}
    logger.info("task.start", extra=before_task(task_name=self.name, context=context))

    try:
        with get_db_session() as session:
            runs = PipelineScorer(session).run_daily()
    except Exception:
        logger.exception("task.failed", extra={"event": "task.failed", "task_name": self.name})
        raise

    payload = {name: summary.to_dict() for name, summary in runs.items()}
    logger.info(
        "task.finish",
        extra=after_task(
            task_name=self.name,
            context=context,
            status="succeeded",
            succeeded=sum(summary.succeeded for summary in runs.values()),
            failed=sum(summary.failed for summary in runs.values()),
        ),
    )
    return payload


@celery_app.task(bind=True, name="pipeline.process_event_queue")
def process_event_queue_task(self, limit: int = 200) -> dict[str, Any]:
    context = {"run_type": "event_queue", "trace_id": getattr(self.request, "id", None) or new_trace_id()}
    logger.info("task.start", extra=before_task(task_name=self.name, context=context))

    try:
        with get_db_session() as session:
            scorer = PipelineScorer(session)
            summary = scorer.process_event_queue(limit=limit)
            scorer.log_run("event_queue", summary)
    except Exception:
        logger.exception("task.failed", extra={"event": "task.failed", "task_name": self.name})
        raise

    logger.info("task.finish", extra=after_task(task_name=self.name, context=context, status="succeeded"))
    return summary.to_dict()


@celery_app.task(bind=True, name="pipeline.recalculate_deal")
def recalculate_deal_task(self, recommendation_id: str, trigger_source: str = TriggerSource.WEBHOOK.value) -> dict | None:
    """Rescore one deal out of band; scoring errors are logged and reported, not retried."""
    context = {
        "recommendation_id": recommendation_id,
        "trace_id": getattr(self.request, "id", None) or new_trace_id(),
    }
    logger.info("task.start", extra=before_task(task_name=self.name, context=context))

    with get_db_session() as session:
        results, summary = PipelineScorer(session).recalculate_many([recommendation_id], trigger_source)

    status = "failed" if summary.failed else "succeeded"
    logger.info("task.finish", extra=after_task(task_name=self.name, context=context, status=status))
    result = results[0]
    return result.to_dict() if result is not None else None
