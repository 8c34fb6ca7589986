"""Rep-entered call assessment model module."""

from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, Base
from app.utils.ids import new_id


class RecommendationCallScore(Base, AuditMixin):
    __tablename__ = "recommendation_call_scores"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recommendation_id: Mapped[str] = mapped_column(
        ForeignKey("recommendations.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    budget_clarity: Mapped[str | None] = mapped_column(String(20))
    competition: Mapped[str | None] = mapped_column(String(20))
    engagement: Mapped[str | None] = mapped_column(String(20))
    plan_fit: Mapped[str | None] = mapped_column(String(20))
    created_by: Mapped[str | None] = mapped_column(String(64))

    recommendation = relationship("Recommendation", back_populates="call_score")
