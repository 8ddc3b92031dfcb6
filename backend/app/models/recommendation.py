from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Enum, Float, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import RecommendationCategory, RecommendationPriority, RecommendationStatus


class BusinessRecommendation(Base):
    __tablename__ = "business_recommendations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    segment_id: Mapped[int | None] = mapped_column(
        ForeignKey("business_segments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    category: Mapped[RecommendationCategory] = mapped_column(
        Enum(RecommendationCategory, name="recommendation_category"),
        nullable=False,
    )
    priority: Mapped[RecommendationPriority] = mapped_column(
        Enum(RecommendationPriority, name="recommendation_priority"),
        default=RecommendationPriority.medium,
        nullable=False,
    )
    status: Mapped[RecommendationStatus] = mapped_column(
        Enum(RecommendationStatus, name="recommendation_status"),
        default=RecommendationStatus.pending,
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    estimated_impact: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    implementation_cost: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    time_to_implement: Mapped[str | None] = mapped_column(String(100), nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    based_on_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    implemented_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    segment: Mapped["BusinessSegment | None"] = relationship("BusinessSegment", back_populates="recommendations")
