"""Recommendation (pipeline deal) model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, Base
from app.models.enums import RecommendationStatus
from app.utils.ids import new_id


class Recommendation(Base, AuditMixin):
    __tablename__ = "recommendations"
    __table_args__ = (
        Index("idx_recommendations_status", "status"),
        Index("idx_recommendations_archived", "archived_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=RecommendationStatus.DRAFT.value, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime)
    snoozed_until: Mapped[datetime | None] = mapped_column(DateTime)
    snooze_reason: Mapped[str | None] = mapped_column(Text)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime)
    archived_by: Mapped[str | None] = mapped_column(String(64))
    archive_reason: Mapped[str | None] = mapped_column(String(30))
    archive_notes: Mapped[str | None] = mapped_column(Text)
    revived_at: Mapped[datetime | None] = mapped_column(DateTime)
    revived_by: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text)

    items = relationship("RecommendationItem", back_populates="recommendation", cascade="all, delete-orphan")
    invites = relationship("RecommendationInvite", back_populates="recommendation", cascade="all, delete-orphan")
    communications = relationship(
        "RecommendationCommunication", back_populates="recommendation", cascade="all, delete-orphan"
    )
    call_score = relationship("RecommendationCallScore", back_populates="recommendation", uselist=False)
