"""Inbound webhook endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.api.v1._authz import authorize_secret, map_auth_error, service_http_error
from app.core.config import get_config
from app.core.exceptions import PortalError
from app.database.db import get_db
from app.schemas.pipeline import EmailTrackingEvent
from app.services.activity_service import ActivityService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/email-tracking", status_code=status.HTTP_202_ACCEPTED)
def email_tracking(
    payload: EmailTrackingEvent,
    webhook_secret: str | None = Header(default=None, alias="X-Webhook-Secret"),
    db: Session = Depends(get_db),
) -> dict:
    """Record an invite milestone; the deal is rescored by the next queue run."""
    try:
        authorize_secret(webhook_secret, get_config().WEBHOOK_SECRET, "webhook secret")
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc

    try:
        event = ActivityService(db).record_tracking_event(
            payload.invite_id, payload.event.value, occurred_at=payload.occurred_at
        )
    except PortalError as exc:
        raise service_http_error(exc) from exc
    return {"queued": True, "event_id": event.id, "recommendation_id": event.recommendation_id}
