"""Bulk scoring run audit model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utcnow
from app.utils.ids import new_id


class ScoringRun(Base):
    __tablename__ = "pipeline_scoring_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    run_type: Mapped[str] = mapped_column(String(30), nullable=False)
    processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    timed_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    errors: Mapped[list | None] = mapped_column(JSON)
    completed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
