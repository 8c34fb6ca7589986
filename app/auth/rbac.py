"""Role-based authorization helpers for portal staff."""

from __future__ import annotations

from app.core.exceptions import AuthorizationError

PIPELINE_READ = "pipeline.read"
PIPELINE_WRITE = "pipeline.write"
PIPELINE_RECALCULATE = "pipeline.recalculate"
PIPELINE_REFRESH = "pipeline.refresh"
PIPELINE_CONFIG = "pipeline.config"

ROLE_SCOPES: dict[str, set[str]] = {
    "admin": {
        "*",
    },
    "sales": {
        PIPELINE_READ,
        PIPELINE_WRITE,
        PIPELINE_RECALCULATE,
        PIPELINE_REFRESH,
    },
    "production_team": {
        PIPELINE_READ,
        PIPELINE_RECALCULATE,
    },
    "viewer": {
        PIPELINE_READ,
    },
}


def get_scopes_for_role(role: str) -> set[str]:
    """Return scopes granted to a role."""
    return ROLE_SCOPES.get(role.lower(), set())


def has_scopes(role: str, required_scopes: list[str] | set[str] | tuple[str, ...]) -> bool:
    """Check if role includes every required scope."""
    granted = get_scopes_for_role(role)
    if "*" in granted:
        return True
    return set(required_scopes).issubset(granted)


def require_scopes(role: str, required_scopes: list[str] | set[str] | tuple[str, ...]) -> None:
    """Raise when a role lacks required scopes."""
    if has_scopes(role=role, required_scopes=required_scopes):
        return
    missing = sorted(set(required_scopes) - get_scopes_for_role(role))
    raise AuthorizationError(f"Missing required scopes: {', '.join(missing)}")
