"""Pipeline scoring endpoints for API v1."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.api.v1._authz import authorize, authorize_cron, map_auth_error, service_http_error
from app.auth.rbac import PIPELINE_CONFIG, PIPELINE_READ, PIPELINE_RECALCULATE, PIPELINE_REFRESH
from app.core.exceptions import PortalError
from app.database.db import get_db
from app.models import ACTIVE_SCORING_STATUSES, Recommendation, TriggerSource
from app.schemas.pipeline import (
    BatchRecalculateResponse,
    BatchSummary,
    RecalculateRequest,
    ScoreResult,
    SingleRecalculateResponse,
    naive_utc,
)
from app.schemas.scoring import ScoringConfig
from app.services.deal_lifecycle_service import DealLifecycleService
from app.services.pipeline_scorer import PipelineScorer
from app.services.revenue_summary_service import RevenueSummaryService
from app.services.scoring_config_service import ScoringConfigService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pipeline", tags=["pipeline"])

REFRESH_ERROR_PREVIEW = 5


@router.post("/recalculate")
def recalculate(
    payload: RecalculateRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        user = authorize(authorization=authorization, scopes=[PIPELINE_RECALCULATE])
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    scorer = PipelineScorer(db)
    if payload.recommendation_id:
        try:
            result = scorer.recalculate(payload.recommendation_id, TriggerSource.UI_ACTION)
        except PortalError as exc:
            raise service_http_error(exc) from exc
        return SingleRecalculateResponse(
            recommendation_id=payload.recommendation_id,
            result=ScoreResult(**result.to_dict()) if result else None,
            skipped=result is None,
        ).model_dump(mode="json")

    if payload.recommendation_ids:
        results, summary = scorer.recalculate_many(payload.recommendation_ids, TriggerSource.UI_ACTION)
        logger.info(
            "pipeline.recalculate.batch",
            extra={"event": "pipeline.recalculate.batch", "user_id": user.user_id, "total": len(results)},
        )
        return BatchRecalculateResponse(
            summary=BatchSummary(
                total=len(payload.recommendation_ids),
                processed=summary.succeeded,
                skipped=summary.skipped,
                failed=summary.failed,
            ),
            results=[ScoreResult(**r.to_dict()) if r else None for r in results],
        ).model_dump(mode="json")

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Provide recommendation_id or recommendation_ids.",
    )


@router.post("/refresh-scores")
def refresh_scores(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    """Force a rescore of every active deal and report history row diagnostics."""
    try:
        user = authorize(authorization=authorization, scopes=[PIPELINE_REFRESH])
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    scorer = PipelineScorer(db)
    active_count = db.scalar(
        select(func.count()).select_from(Recommendation).where(Recommendation.status.in_(ACTIVE_SCORING_STATUSES))
    )
    history_before = scorer.count_history()

    summary = scorer.recalculate_all_active(TriggerSource.MANUAL_REFRESH, force=True)

    history_after = scorer.count_history()
    latest = scorer.latest_history_entry()
    logger.info(
        "pipeline.refresh_scores.completed",
        extra={
            "event": "pipeline.refresh_scores.completed",
            "user_id": user.user_id,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
        },
    )
    return {
        "message": f"Recalculated {summary.succeeded} of {summary.processed} active deals",
        "details": {
            "processed": summary.processed,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
            "skipped": summary.skipped,
            "duration_ms": summary.duration_ms,
            "timed_out": summary.timed_out,
            "errors": summary.errors[:REFRESH_ERROR_PREVIEW],
        },
        "diagnostics": {
            "active_deals_count": int(active_count or 0),
            "history_records_count": history_before,
            "history_records_after": history_after,
            "new_history_records": history_after - history_before,
            "latest_history_entry": (
                {
                    "recommendation_id": latest.recommendation_id,
                    "confidence_score": latest.confidence_score,
                    "trigger_source": latest.trigger_source,
                    "scored_at": latest.scored_at.isoformat(),
                }
                if latest is not None
                else None
            ),
        },
    }


@router.post("/cron")
def cron(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        authorize_cron(authorization)
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    runs = PipelineScorer(db).run_daily()
    return {"success": True, "runs": {name: summary.to_dict() for name, summary in runs.items()}}


@router.get("/revenue-summary")
def revenue_summary(
    current_mrr: float = 0.0,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        authorize(authorization=authorization, scopes=[PIPELINE_READ])
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    summary = RevenueSummaryService(db).get_summary(current_mrr=current_mrr)
    if summary["last_updated"] is not None:
        summary["last_updated"] = summary["last_updated"].isoformat()
    return summary


@router.get("/archive-analytics")
def archive_analytics(
    archived_after: datetime | None = None,
    archived_before: datetime | None = None,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        authorize(authorization=authorization, scopes=[PIPELINE_READ])
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    return DealLifecycleService(db).get_archive_analytics(
        archived_after=naive_utc(archived_after), archived_before=naive_utc(archived_before)
    )


@router.get("/scoring-config")
def get_scoring_config(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        authorize(authorization=authorization, scopes=[PIPELINE_READ])
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    return ScoringConfigService(db).get_config().model_dump()


@router.put("/scoring-config")
def put_scoring_config(
    payload: dict = Body(...),
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    try:
        user = authorize(authorization=authorization, scopes=[PIPELINE_CONFIG])
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    try:
        config: ScoringConfig = ScoringConfigService(db).save_config(payload)
    except PortalError as exc:
        raise service_http_error(exc) from exc
    logger.info("pipeline.scoring_config.updated", extra={"event": "pipeline.scoring_config.updated", "user_id": user.user_id})
    return config.model_dump()
