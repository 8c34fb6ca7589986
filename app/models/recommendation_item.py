"""Priced line item model module."""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, Base
from app.utils.ids import new_id


class RecommendationItem(Base, AuditMixin):
    __tablename__ = "recommendation_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recommendation_id: Mapped[str] = mapped_column(
        ForeignKey("recommendations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    monthly_price: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False))
    onetime_price: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False))
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    recommendation = relationship("Recommendation", back_populates="items")
