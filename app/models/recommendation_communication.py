"""Prospect/team communication log model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, Base, utcnow
from app.utils.ids import new_id


class RecommendationCommunication(Base, AuditMixin):
    __tablename__ = "recommendation_communications"
    __table_args__ = (Index("idx_communications_rec_contact", "recommendation_id", "contact_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recommendation_id: Mapped[str] = mapped_column(
        ForeignKey("recommendations.id", ondelete="CASCADE"), nullable=False
    )
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    channel: Mapped[str] = mapped_column(String(30), default="email", nullable=False)
    contact_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text)
    logged_by: Mapped[str | None] = mapped_column(String(64))

    recommendation = relationship("Recommendation", back_populates="communications")
