"""Dependency providers for API handlers and background workers."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.auth.jwt import ACCESS_TOKEN, decode_jwt
from app.core.config import Config, get_config
from app.core.exceptions import AuthenticationError
from app.database.db import get_db


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    role: str
    permissions_version: int
    claims: dict[str, Any]


def get_settings() -> Config:
    """Return validated application configuration."""
    return get_config()


def get_db_session() -> Generator[Session, None, None]:
    """Yield SQLAlchemy session for dependency injection."""
    yield from get_db()


def get_current_user(token: str, settings: Config | None = None) -> CurrentUser:
    """Resolve current portal user from a bearer access token."""
    cfg = settings or get_settings()
    claims = decode_jwt(token=token, secret=cfg.JWT_SECRET)
    if claims.get("token_use", ACCESS_TOKEN) != ACCESS_TOKEN:
        raise AuthenticationError("Refresh tokens cannot be used for API access.")

    try:
        user = CurrentUser(
            user_id=str(claims["sub"]),
            role=str(claims["role"]).lower(),
            permissions_version=int(claims.get("permissions_version", 1)),
            claims=claims,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationError("Invalid auth claims.") from exc

    if user.permissions_version < cfg.JWT_PERMISSIONS_VERSION:
        raise AuthenticationError("Token permissions are outdated; sign in again.")
    return user
