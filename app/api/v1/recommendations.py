"""Per-recommendation scoring endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.api.v1._authz import authorize, map_auth_error, service_http_error
from app.auth.rbac import PIPELINE_READ, PIPELINE_WRITE
from app.core.exceptions import PortalError
from app.database.db import get_db
from app.schemas.pipeline import (
    ArchiveRequest,
    CallScoresResponse,
    CallScoresUpdateRequest,
    CommunicationCreateRequest,
    LifecycleResponse,
    ScoreHistoryItem,
    ScoreHistoryResponse,
    ScoreResult,
    SnoozeRequest,
    SnoozeResponse,
    StatusChangeRequest,
)
from app.services.activity_service import ActivityService
from app.services.call_score_service import CallScoreService
from app.services.deal_lifecycle_service import DealLifecycleService
from app.services.pipeline_scorer import PipelineScorer, RecalculationResult
from app.services.score_audit_service import ScoreAuditService
from app.services.snooze_service import SnoozeService

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


def _authorize(authorization: str | None, scope: str):
    try:
        return authorize(authorization=authorization, scopes=[scope])
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc


def _score_payload(result: RecalculationResult | None) -> dict | None:
    return ScoreResult(**result.to_dict()).model_dump(mode="json") if result else None


@router.get("/{recommendation_id}/score-history", response_model=ScoreHistoryResponse)
def score_history(
    recommendation_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> ScoreHistoryResponse:
    _authorize(authorization, PIPELINE_READ)
    try:
        history = PipelineScorer(db).get_history(recommendation_id)
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return ScoreHistoryResponse(history=[ScoreHistoryItem.model_validate(entry) for entry in history])


@router.get("/{recommendation_id}/score-audit")
def score_audit(
    recommendation_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    _authorize(authorization, PIPELINE_READ)
    try:
        events = ScoreAuditService(db).get_audit_trail(recommendation_id)
    except PortalError as exc:
        raise service_http_error(exc) from exc
    for event in events:
        event["scored_at"] = event["scored_at"].isoformat()
    return {"recommendation_id": recommendation_id, "events": events, "total": len(events)}


@router.get("/{recommendation_id}/call-scores")
def get_call_scores(
    recommendation_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    _authorize(authorization, PIPELINE_READ)
    try:
        row = CallScoreService(db).get_call_scores(recommendation_id)
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "call_scores": CallScoresResponse.model_validate(row).model_dump(mode="json") if row else None,
    }


@router.put("/{recommendation_id}/call-scores")
def put_call_scores(
    recommendation_id: str,
    payload: CallScoresUpdateRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    user = _authorize(authorization, PIPELINE_WRITE)
    factors = {
        key: value.value if value is not None else None
        for key, value in payload.model_dump(exclude_unset=True).items()
    }
    try:
        row, result = CallScoreService(db).upsert_call_scores(recommendation_id, factors, user_id=user.user_id)
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "call_scores": CallScoresResponse.model_validate(row).model_dump(mode="json"),
        "score": _score_payload(result),
    }


@router.post("/{recommendation_id}/communications", status_code=status.HTTP_201_CREATED)
def log_communication(
    recommendation_id: str,
    payload: CommunicationCreateRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    user = _authorize(authorization, PIPELINE_WRITE)
    try:
        communication, result = ActivityService(db).log_communication(
            recommendation_id,
            direction=payload.direction.value,
            channel=payload.channel,
            summary=payload.summary,
            contact_at=payload.contact_at,
            user_id=user.user_id,
        )
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "id": communication.id,
        "direction": communication.direction,
        "contact_at": communication.contact_at.isoformat(),
        "score": _score_payload(result),
    }


@router.post("/{recommendation_id}/snooze")
def snooze(
    recommendation_id: str,
    payload: SnoozeRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    _authorize(authorization, PIPELINE_WRITE)
    try:
        recommendation, result = SnoozeService(db).snooze(
            recommendation_id, snoozed_until=payload.snoozed_until, reason=payload.reason
        )
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "success": True,
        "recommendation": SnoozeResponse(
            id=recommendation.id,
            status=recommendation.status,
            snoozed_until=recommendation.snoozed_until,
            snooze_reason=recommendation.snooze_reason,
            confidence_score=result.confidence_score if result else None,
        ).model_dump(mode="json"),
    }


@router.delete("/{recommendation_id}/snooze")
def unsnooze(
    recommendation_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    _authorize(authorization, PIPELINE_WRITE)
    try:
        recommendation, result = SnoozeService(db).unsnooze(recommendation_id)
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "success": True,
        "recommendation": SnoozeResponse(
            id=recommendation.id,
            status=recommendation.status,
            snoozed_until=recommendation.snoozed_until,
            snooze_reason=recommendation.snooze_reason,
            confidence_score=result.confidence_score if result else None,
        ).model_dump(mode="json"),
    }


@router.patch("/{recommendation_id}/status")
def change_status(
    recommendation_id: str,
    payload: StatusChangeRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    user = _authorize(authorization, PIPELINE_WRITE)
    try:
        recommendation, result = DealLifecycleService(db).change_status(
            recommendation_id, payload.status.value, user_id=user.user_id
        )
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "recommendation": LifecycleResponse.model_validate(recommendation).model_dump(mode="json"),
        "score": _score_payload(result),
    }


@router.post("/{recommendation_id}/archive")
def archive(
    recommendation_id: str,
    payload: ArchiveRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    user = _authorize(authorization, PIPELINE_WRITE)
    try:
        recommendation = DealLifecycleService(db).archive(
            recommendation_id, reason=payload.reason.value, notes=payload.notes, user_id=user.user_id
        )
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "success": True,
        "recommendation": LifecycleResponse.model_validate(recommendation).model_dump(mode="json"),
    }


@router.delete("/{recommendation_id}/archive")
def revive(
    recommendation_id: str,
    reset_metrics: bool = True,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> dict:
    user = _authorize(authorization, PIPELINE_WRITE)
    try:
        recommendation, result = DealLifecycleService(db).revive(
            recommendation_id, reset_metrics=reset_metrics, user_id=user.user_id
        )
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {
        "success": True,
        "recommendation": LifecycleResponse.model_validate(recommendation).model_dump(mode="json"),
        "score": _score_payload(result),
    }
