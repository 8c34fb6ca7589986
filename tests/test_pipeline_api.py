from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.auth.jwt import create_token_pair
from app.core.config import get_config
from app.database.db import get_db
from app.main import app
from app.models import RecommendationCommunication, RecommendationInvite, ScoreEvent, ScoreHistoryEntry
from app.models.base import utcnow

API = get_config().API_PREFIX


def _auth_header(role: str = "sales") -> dict[str, str]:
    cfg = get_config()
    tokens = create_token_pair(
        user_id="rep-1",
        role=role,
        secret=cfg.JWT_SECRET,
        permissions_version=cfg.JWT_PERMISSIONS_VERSION,
    )
    return {"Authorization": f"Bearer {tokens.access_token}"}


@pytest.fixture
def db(file_session_factory):
    session = file_session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(file_session_factory):
    def _override_get_db():
        session = file_session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def deal_factory(db, seed):
    def _make(**kwargs):
        kwargs.setdefault("sent_at", utcnow() - timedelta(days=1))
        return seed(db, **kwargs)

    return _make


def test_recalculate_requires_token(client):
    response = client.post(f"{API}/pipeline/recalculate", json={"recommendation_id": "x"})
    assert response.status_code == 401


def test_viewer_cannot_recalculate(client, deal_factory):
    deal = deal_factory()
    response = client.post(
        f"{API}/pipeline/recalculate", json={"recommendation_id": deal.id}, headers=_auth_header("viewer")
    )
    assert response.status_code == 403


def test_single_recalculate_returns_score(client, deal_factory):
    deal = deal_factory()

    response = client.post(f"{API}/pipeline/recalculate", json={"recommendation_id": deal.id}, headers=_auth_header())

    assert response.status_code == 200
    body = response.json()
    assert body["skipped"] is False
    assert body["result"]["recommendation_id"] == deal.id
    assert body["result"]["trigger_source"] == "ui_action"
    assert 0 <= body["result"]["confidence_score"] <= 100


def test_single_recalculate_skips_draft(client, deal_factory):
    deal = deal_factory(status="draft")

    response = client.post(f"{API}/pipeline/recalculate", json={"recommendation_id": deal.id}, headers=_auth_header())

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert response.json()["result"] is None


def test_single_recalculate_error_statuses(client, deal_factory):
    malformed = deal_factory(items=[])
    headers = _auth_header()

    missing = client.post(f"{API}/pipeline/recalculate", json={"recommendation_id": "missing"}, headers=headers)
    broken = client.post(f"{API}/pipeline/recalculate", json={"recommendation_id": malformed.id}, headers=headers)
    empty = client.post(f"{API}/pipeline/recalculate", json={}, headers=headers)

    assert missing.status_code == 404
    assert broken.status_code == 422
    assert empty.status_code == 400


def test_batch_recalculate_summary(client, deal_factory):
    good = deal_factory()
    draft = deal_factory(status="draft")
    malformed = deal_factory(items=[(None, None, 1)])

    response = client.post(
        f"{API}/pipeline/recalculate",
        json={"recommendation_ids": [good.id, draft.id, malformed.id]},
        headers=_auth_header("production_team"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"total": 3, "processed": 1, "skipped": 1, "failed": 1}
    assert body["results"][0]["recommendation_id"] == good.id
    assert body["results"][1:] == [None, None]


def test_refresh_scores_reports_diagnostics(client, deal_factory):
    deal_factory()
    deal_factory(client_name="Bright Smiles")
    deal_factory(status="accepted")

    response = client.post(f"{API}/pipeline/refresh-scores", headers=_auth_header())

    assert response.status_code == 200
    body = response.json()
    assert body["details"]["succeeded"] == 2
    assert body["details"]["failed"] == 0
    assert body["diagnostics"]["active_deals_count"] == 2
    assert body["diagnostics"]["new_history_records"] == 2
    assert body["diagnostics"]["latest_history_entry"]["trigger_source"] == "manual_refresh"


def test_production_team_cannot_refresh_everything(client):
    response = client.post(f"{API}/pipeline/refresh-scores", headers=_auth_header("production_team"))
    assert response.status_code == 403


def test_score_history_is_ascending(client, deal_factory):
    deal = deal_factory()
    headers = _auth_header()
    for _ in range(2):
        client.post(f"{API}/pipeline/recalculate", json={"recommendation_id": deal.id}, headers=headers)

    response = client.get(f"{API}/recommendations/{deal.id}/score-history", headers=_auth_header("viewer"))

    assert response.status_code == 200
    history = response.json()["history"]
    assert len(history) == 2
    assert [h["scored_at"] for h in history] == sorted(h["scored_at"] for h in history)
    assert client.get(f"{API}/recommendations/missing/score-history", headers=headers).status_code == 404


def test_score_audit_lists_events(client, deal_factory):
    deal = deal_factory()
    headers = _auth_header()
    client.post(f"{API}/pipeline/recalculate", json={"recommendation_id": deal.id}, headers=headers)

    response = client.get(f"{API}/recommendations/{deal.id}/score-audit", headers=headers)

    assert response.status_code == 200
    assert response.json()["total"] == 1
    assert response.json()["events"][0]["deltas"] is None


def test_put_call_scores_rescores_deal(client, deal_factory):
    deal = deal_factory()

    response = client.put(
        f"{API}/recommendations/{deal.id}/call-scores",
        json={"plan_fit": "strong", "engagement": "high"},
        headers=_auth_header(),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["call_scores"]["plan_fit"] == "strong"
    assert body["call_scores"]["budget_clarity"] is None
    assert body["score"]["base_score"] == 55

    fetched = client.get(f"{API}/recommendations/{deal.id}/call-scores", headers=_auth_header("viewer"))
    assert fetched.json()["call_scores"]["engagement"] == "high"


def test_put_call_scores_rejects_unknown_level(client, deal_factory):
    deal = deal_factory()
    response = client.put(
        f"{API}/recommendations/{deal.id}/call-scores", json={"plan_fit": "amazing"}, headers=_auth_header()
    )
    assert response.status_code == 422


def test_log_communication(client, deal_factory):
    deal = deal_factory()

    response = client.post(
        f"{API}/recommendations/{deal.id}/communications",
        json={"direction": "inbound", "summary": "Called back about the proposal"},
        headers=_auth_header(),
    )

    assert response.status_code == 201
    assert response.json()["direction"] == "inbound"
    assert response.json()["score"]["penalty_breakdown"]["silence"] == 0


def test_snooze_and_unsnooze(client, deal_factory):
    deal = deal_factory()
    headers = _auth_header()
    until = (utcnow() + timedelta(days=10)).isoformat()

    snoozed = client.post(
        f"{API}/recommendations/{deal.id}/snooze", json={"snoozed_until": until, "reason": "Q2 budget"}, headers=headers
    )
    again = client.delete(f"{API}/recommendations/{deal.id}/snooze", headers=headers)
    not_snoozed = client.delete(f"{API}/recommendations/{deal.id}/snooze", headers=headers)
    past = client.post(
        f"{API}/recommendations/{deal.id}/snooze",
        json={"snoozed_until": (utcnow() - timedelta(days=1)).isoformat()},
        headers=headers,
    )

    assert snoozed.status_code == 200
    assert snoozed.json()["recommendation"]["snooze_reason"] == "Q2 budget"
    assert again.status_code == 200
    assert again.json()["recommendation"]["snoozed_until"] is None
    assert not_snoozed.status_code == 409
    assert past.status_code == 422


def test_email_tracking_webhook_queues_event(client, db, deal_factory, monkeypatch):
    cfg = dataclasses.replace(get_config(), WEBHOOK_SECRET="hook-secret")
    monkeypatch.setattr("app.api.v1.webhooks.get_config", lambda: cfg)
    deal = deal_factory(invites=[{}])
    invite_id = db.query(RecommendationInvite).filter(RecommendationInvite.recommendation_id == deal.id).one().id
    payload = {"invite_id": invite_id, "event": "viewed"}

    rejected = client.post(f"{API}/webhooks/email-tracking", json=payload, headers={"X-Webhook-Secret": "nope"})
    accepted = client.post(f"{API}/webhooks/email-tracking", json=payload, headers={"X-Webhook-Secret": "hook-secret"})

    assert rejected.status_code == 401
    assert accepted.status_code == 202
    assert accepted.json()["recommendation_id"] == deal.id
    db.expire_all()
    assert db.query(ScoreEvent).count() == 1


def test_cron_requires_configured_secret(client, db, deal_factory, monkeypatch):
    cfg = dataclasses.replace(get_config(), CRON_SECRET="cron-secret")
    monkeypatch.setattr("app.api.v1._authz.get_config", lambda: cfg)
    deal_factory()

    rejected = client.post(f"{API}/pipeline/cron", headers={"Authorization": "Bearer wrong"})
    response = client.post(f"{API}/pipeline/cron", headers={"Authorization": "Bearer cron-secret"})

    assert rejected.status_code == 401
    assert response.status_code == 200
    assert response.json()["runs"]["daily_cron"]["succeeded"] == 1
    db.expire_all()
    assert db.query(ScoreHistoryEntry).count() == 1


def test_revenue_summary_and_scoring_config(client, deal_factory):
    deal_factory()
    client.post(f"{API}/pipeline/refresh-scores", headers=_auth_header())

    summary = client.get(f"{API}/pipeline/revenue-summary", params={"current_mrr": 2000}, headers=_auth_header("viewer"))
    assert summary.status_code == 200
    assert summary.json()["in_pipeline"]["deal_count"] == 1
    assert summary.json()["projected_mrr"] >= 2000

    denied = client.put(f"{API}/pipeline/scoring-config", json={"default_base_score": 60}, headers=_auth_header())
    saved = client.put(
        f"{API}/pipeline/scoring-config", json={"default_base_score": 60}, headers=_auth_header("admin")
    )
    invalid = client.put(
        f"{API}/pipeline/scoring-config", json={"default_base_score": 160}, headers=_auth_header("admin")
    )

    assert denied.status_code == 403
    assert saved.status_code == 200
    assert client.get(f"{API}/pipeline/scoring-config", headers=_auth_header()).json()["default_base_score"] == 60
    assert invalid.status_code == 422


def test_archive_and_revive_deal(client, deal_factory):
    deal = deal_factory()
    headers = _auth_header()

    archived = client.post(
        f"{API}/recommendations/{deal.id}/archive", json={"reason": "went_dark"}, headers=headers
    )
    twice = client.post(f"{API}/recommendations/{deal.id}/archive", json={"reason": "timing"}, headers=headers)
    revived = client.delete(f"{API}/recommendations/{deal.id}/archive", headers=headers)
    not_archived = client.delete(f"{API}/recommendations/{deal.id}/archive", headers=headers)

    assert archived.status_code == 200
    assert archived.json()["recommendation"]["status"] == "archived"
    assert archived.json()["recommendation"]["archive_reason"] == "went_dark"
    assert twice.status_code == 409
    assert revived.status_code == 200
    assert revived.json()["recommendation"]["status"] == "sent"
    assert revived.json()["recommendation"]["revived_at"] is not None
    assert revived.json()["score"]["total_penalties"] == 0
    assert not_archived.status_code == 409


def test_archive_validation_and_permissions(client, deal_factory):
    deal = deal_factory()

    unknown = client.post(
        f"{API}/recommendations/{deal.id}/archive", json={"reason": "ghosted"}, headers=_auth_header()
    )
    other = client.post(f"{API}/recommendations/{deal.id}/archive", json={"reason": "other"}, headers=_auth_header())
    viewer = client.post(
        f"{API}/recommendations/{deal.id}/archive", json={"reason": "budget"}, headers=_auth_header("viewer")
    )
    missing = client.post(f"{API}/recommendations/missing/archive", json={"reason": "budget"}, headers=_auth_header())

    assert unknown.status_code == 422
    assert other.status_code == 422
    assert viewer.status_code == 403
    assert missing.status_code == 404


def test_change_status(client, deal_factory):
    deal = deal_factory(status="draft")
    headers = _auth_header()

    sent = client.patch(f"{API}/recommendations/{deal.id}/status", json={"status": "sent"}, headers=headers)
    invalid = client.patch(f"{API}/recommendations/{deal.id}/status", json={"status": "draft"}, headers=headers)
    archived = client.patch(f"{API}/recommendations/{deal.id}/status", json={"status": "archived"}, headers=headers)

    assert sent.status_code == 200
    assert sent.json()["recommendation"]["status"] == "sent"
    assert sent.json()["score"]["recommendation_id"] == deal.id
    assert invalid.status_code == 409
    assert archived.status_code == 422


def test_archive_analytics(client, deal_factory):
    first = deal_factory()
    second = deal_factory(items=[(400.0, 0.0, 1)])
    headers = _auth_header()
    client.post(f"{API}/recommendations/{first.id}/archive", json={"reason": "budget"}, headers=headers)
    client.post(f"{API}/recommendations/{second.id}/archive", json={"reason": "budget"}, headers=headers)

    response = client.get(f"{API}/pipeline/archive-analytics", headers=_auth_header("viewer"))
    future = client.get(
        f"{API}/pipeline/archive-analytics",
        params={"archived_after": (utcnow() + timedelta(days=1)).isoformat()},
        headers=_auth_header("viewer"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_archived"] == 2
    assert body["lost_mrr"] == 1400.0
    assert body["top_reason"] == "budget"
    assert body["reasons_breakdown"][0]["percentage"] == 100
    assert future.json()["total_archived"] == 0


def test_activity_on_unpriced_deal_is_saved(client, db, deal_factory):
    deal = deal_factory(items=[(None, None, 1)])

    response = client.post(
        f"{API}/recommendations/{deal.id}/communications", json={"direction": "inbound"}, headers=_auth_header()
    )

    assert response.status_code == 201
    assert response.json()["score"] is None
    db.expire_all()
    assert db.query(RecommendationCommunication).count() == 1
