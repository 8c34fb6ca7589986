from __future__ import annotations

from datetime import timedelta

import pytest

from app.auth.jwt import create_token_pair, decode_jwt, encode_jwt
from app.auth.rbac import has_scopes, require_scopes
from app.core.config import get_config
from app.core.dependencies import get_current_user
from app.core.exceptions import AuthenticationError, AuthorizationError


def test_jwt_roundtrip_contains_required_claims():
    tokens = create_token_pair(user_id="rep-10", role="sales", secret="test-secret")
    claims = decode_jwt(tokens.access_token, secret="test-secret")
    assert claims["sub"] == "rep-10"
    assert claims["role"] == "sales"
    assert claims["token_use"] == "access"
    assert "exp" in claims
    assert "iat" in claims
    assert "jti" in claims


def test_tampered_token_is_rejected():
    token = create_token_pair(user_id="rep-10", role="viewer", secret="test-secret").access_token
    with pytest.raises(AuthenticationError):
        decode_jwt(token, secret="other-secret")


def test_refresh_token_cannot_authenticate_requests():
    cfg = get_config()
    tokens = create_token_pair(user_id="rep-10", role="admin", secret=cfg.JWT_SECRET)
    assert get_current_user(tokens.access_token).role == "admin"
    with pytest.raises(AuthenticationError):
        get_current_user(tokens.refresh_token)


def test_rbac_blocks_missing_scope():
    require_scopes("viewer", ["pipeline.read"])
    with pytest.raises(AuthorizationError):
        require_scopes("viewer", ["pipeline.recalculate"])


def test_role_scope_matrix():
    assert has_scopes("admin", ["pipeline.config"])
    assert has_scopes("sales", ["pipeline.refresh", "pipeline.write"])
    assert not has_scopes("sales", ["pipeline.config"])
    assert has_scopes("production_team", ["pipeline.recalculate"])
    assert not has_scopes("production_team", ["pipeline.refresh"])
    assert not has_scopes("unknown", ["pipeline.read"])


def test_expired_token_is_rejected_unless_expiry_is_skipped():
    token = encode_jwt({"sub": "rep-10", "role": "sales"}, secret="test-secret", ttl=timedelta(minutes=-5))

    with pytest.raises(AuthenticationError):
        decode_jwt(token, secret="test-secret")
    assert decode_jwt(token, secret="test-secret", verify_exp=False)["sub"] == "rep-10"


def test_malformed_tokens_are_rejected():
    with pytest.raises(AuthenticationError):
        decode_jwt("not-a-token", secret="test-secret")
    with pytest.raises(AuthenticationError):
        decode_jwt("a.b.c", secret="")


def test_token_pair_carries_permissions_version_and_unique_ids():
    tokens = create_token_pair(user_id="rep-10", role="sales", secret="test-secret", permissions_version=3)
    access = decode_jwt(tokens.access_token, secret="test-secret")
    refresh = decode_jwt(tokens.refresh_token, secret="test-secret")

    assert access["permissions_version"] == 3
    assert refresh["token_use"] == "refresh"
    assert refresh["exp"] > access["exp"]
    assert access["jti"] != refresh["jti"]
