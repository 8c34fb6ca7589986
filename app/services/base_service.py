"""Shared service base with robust session lifecycle behavior."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from app.models.base import utcnow

Clock = Callable[[], datetime]


class BaseService:
    """Base class for services that operate on a caller-owned SQLAlchemy session."""

    def __init__(self, db: Session, clock: Clock | None = None) -> None:
        self.db = db
        self.clock = clock or utcnow

    def now(self) -> datetime:
        return self.clock()

    def commit(self) -> None:
        """Commit current transaction and rollback on failure."""
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rollback(self) -> None:
        self.db.rollback()
