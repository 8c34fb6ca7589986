"""Health endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter

from app.core.config import get_config
from app.database.db import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    cfg = get_config()
    return {"status": "ok", "service": cfg.APP_NAME, "version": cfg.APP_VERSION}


@router.get("/health/ready")
def readiness() -> dict:
    database_ok = verify_database_connection()
    return {"status": "ok" if database_ok else "degraded", "database": database_ok}
