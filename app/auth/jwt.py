"""Signed bearer tokens for portal staff (HS256 JWTs)."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.exceptions import AuthenticationError
from app.utils.ids import new_id

ALGORITHM = "HS256"
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
CLOCK_SKEW_SECONDS = 30


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


def _encode_segment(value: dict[str, Any]) -> str:
    raw = json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _decode_segment(segment: str) -> dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        value = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, UnicodeDecodeError) as exc:
        raise AuthenticationError("Invalid token payload.") from exc
    if not isinstance(value, dict):
        raise AuthenticationError("Invalid token payload.")
    return value


def _signature(signing_input: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _require_secret(secret: str) -> None:
    if not secret:
        raise AuthenticationError("JWT secret must be configured.")


def encode_jwt(claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
    """Sign ``claims`` with iat, exp and jti filled in where absent."""
    _require_secret(secret)
    issued_at = datetime.now(timezone.utc)
    body = {
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
        "jti": new_id(),
        **claims,
    }
    signing_input = f"{_encode_segment({'alg': ALGORITHM, 'typ': 'JWT'})}.{_encode_segment(body)}"
    return f"{signing_input}.{_signature(signing_input, secret)}"


def decode_jwt(token: str, secret: str, verify_exp: bool = True) -> dict[str, Any]:
    """Verify signature and expiry and return the claims."""
    _require_secret(secret)
    segments = token.split(".")
    if len(segments) != 3:
        raise AuthenticationError("Invalid token format.")
    header_segment, claims_segment, signature = segments

    if not hmac.compare_digest(_signature(f"{header_segment}.{claims_segment}", secret), signature):
        raise AuthenticationError("Invalid token signature.")
    if _decode_segment(header_segment).get("alg") != ALGORITHM:
        raise AuthenticationError("Unsupported token algorithm.")

    claims = _decode_segment(claims_segment)
    if verify_exp:
        if "exp" not in claims:
            raise AuthenticationError("Token is missing exp claim.")
        now = int(datetime.now(timezone.utc).timestamp())
        if int(claims["exp"]) + CLOCK_SKEW_SECONDS < now:
            raise AuthenticationError("Token has expired.")
    return claims


def _staff_token(
    user_id: str,
    role: str,
    secret: str,
    permissions_version: int,
    token_use: str,
    ttl: timedelta,
) -> str:
    return encode_jwt(
        {
            "sub": str(user_id),
            "role": role,
            "permissions_version": permissions_version,
            "token_use": token_use,
        },
        secret=secret,
        ttl=ttl,
    )


def create_token_pair(
    user_id: str,
    role: str,
    secret: str,
    permissions_version: int = 1,
    access_ttl_minutes: int = 15,
    refresh_ttl_days: int = 14,
) -> TokenPair:
    """Issue a short-lived access token and a longer-lived refresh token for a staff member."""
    return TokenPair(
        access_token=_staff_token(
            user_id, role, secret, permissions_version, ACCESS_TOKEN, timedelta(minutes=access_ttl_minutes)
        ),
        refresh_token=_staff_token(
            user_id, role, secret, permissions_version, REFRESH_TOKEN, timedelta(days=refresh_ttl_days)
        ),
    )
