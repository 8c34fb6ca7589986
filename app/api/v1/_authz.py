"""Shared authorization and error mapping helpers for API v1 route modules."""

from __future__ import annotations

import hmac

from fastapi import HTTPException

from app.auth.rbac import require_scopes
from app.core.config import get_config
from app.core.dependencies import CurrentUser, get_current_user
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ComputationError,
    ConfigurationError,
    InvalidStateError,
    NotFoundError,
    PortalError,
    ValidationError,
)


def _extract_bearer_token(authorization: str | None) -> str:
    if authorization is None or not authorization.strip():
        raise AuthenticationError("Authorization header is required.")
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Authorization header must use Bearer token.")
    return parts[1].strip()


def authorize(authorization: str | None, scopes: list[str]) -> CurrentUser:
    token = _extract_bearer_token(authorization)
    user = get_current_user(token=token, settings=get_config())
    require_scopes(user.role, scopes)
    return user


def authorize_secret(provided: str | None, expected: str | None, label: str) -> None:
    """Constant-time check of a shared secret such as the cron or webhook secret."""
    if not expected:
        raise ConfigurationError(f"{label} is not configured.")
    if provided is None or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError(f"Invalid {label}.")


def authorize_cron(authorization: str | None) -> None:
    token = _extract_bearer_token(authorization)
    authorize_secret(token, get_config().CRON_SECRET, "cron secret")


def map_auth_error(exc: Exception) -> tuple[int, str]:
    if isinstance(exc, AuthenticationError):
        return 401, str(exc)
    if isinstance(exc, AuthorizationError):
        return 403, str(exc)
    if isinstance(exc, ConfigurationError):
        return 500, str(exc)
    return 401, "Unauthorized."


_SERVICE_ERROR_STATUS: tuple[tuple[type[PortalError], int], ...] = (
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ComputationError, 422),
    (ValidationError, 422),
)


def service_http_error(exc: PortalError) -> HTTPException:
    """Translate a service-layer error into the matching HTTP error."""
    for error_type, status_code in _SERVICE_ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
