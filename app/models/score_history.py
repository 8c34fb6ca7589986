"""Append-only pipeline score history model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utcnow
from app.utils.ids import new_id


class ScoreHistoryEntry(Base):
    """One scoring outcome. Rows are inserted by the scorer and never updated."""

    __tablename__ = "pipeline_score_history"
    __table_args__ = (
        Index("idx_score_history_rec_scored", "recommendation_id", "scored_at"),
        UniqueConstraint("recommendation_id", "sequence", name="uq_score_history_rec_sequence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recommendation_id: Mapped[str] = mapped_column(
        ForeignKey("recommendations.id", ondelete="RESTRICT"), nullable=False
    )
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False)
    confidence_percent: Mapped[float] = mapped_column(Float, nullable=False)
    weighted_monthly: Mapped[float] = mapped_column(Float, nullable=False)
    weighted_onetime: Mapped[float] = mapped_column(Float, nullable=False)
    base_score: Mapped[int] = mapped_column(Integer, nullable=False)
    total_penalties: Mapped[float] = mapped_column(Float, nullable=False)
    total_bonus: Mapped[float] = mapped_column(Float, nullable=False)
    breakdown: Mapped[dict | None] = mapped_column(JSON)
    trigger_source: Mapped[str] = mapped_column(String(30), nullable=False)
    scored_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    # Per-deal insertion counter; orders rows that share a scored_at.
    sequence: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
