from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.models import (
    Base,
    Recommendation,
    RecommendationCallScore,
    RecommendationCommunication,
    RecommendationInvite,
    RecommendationItem,
)

NOW = datetime(2026, 3, 2, 12, 0, 0)


class FakeClock:
    """Manually advanced clock for services that accept ``clock=``."""

    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


def _build_session_factory(url: str = "sqlite:///:memory:"):
    engine = create_engine(url, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return engine, TestingSessionLocal


@pytest.fixture
def session():
    engine, TestingSessionLocal = _build_session_factory()
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    engine, TestingSessionLocal = _build_session_factory(f"sqlite:///{tmp_path / 'pipeline_test.db'}")
    try:
        yield TestingSessionLocal
    finally:
        engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


def seed_deal(
    session,
    status: str = "sent",
    sent_at: datetime | None = None,
    items: list[tuple[float | None, float | None, int]] | None = None,
    call_scores: dict | None = None,
    invites: list[dict] | None = None,
    communications: list[tuple[str, datetime]] | None = None,
    client_name: str = "Acme Dental",
    **fields,
) -> Recommendation:
    """Insert a deal with line items (monthly, one-time, quantity) and optional scoring inputs."""
    recommendation = Recommendation(
        client_name=client_name,
        status=status,
        sent_at=sent_at if sent_at is not None else NOW - timedelta(days=1),
        **fields,
    )
    session.add(recommendation)
    session.flush()

    for monthly, onetime, quantity in items if items is not None else [(1000.0, 500.0, 1)]:
        session.add(
            RecommendationItem(
                recommendation_id=recommendation.id,
                product_name="Local SEO",
                monthly_price=monthly,
                onetime_price=onetime,
                quantity=quantity,
            )
        )
    if call_scores is not None:
        session.add(RecommendationCallScore(recommendation_id=recommendation.id, **call_scores))
    for invite in invites or []:
        session.add(RecommendationInvite(recommendation_id=recommendation.id, email="owner@acme.test", **invite))
    for direction, contact_at in communications or []:
        session.add(
            RecommendationCommunication(
                recommendation_id=recommendation.id,
                direction=direction,
                contact_at=contact_at,
            )
        )

    session.commit()
    session.refresh(recommendation)
    return recommendation


@pytest.fixture
def make_deal(session):
    def _make(**kwargs) -> Recommendation:
        return seed_deal(session, **kwargs)

    return _make


@pytest.fixture
def seed():
    return seed_deal
