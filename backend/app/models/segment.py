from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class BusinessSegment(Base):
    __tablename__ = "business_segments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    transactions: Mapped[list["CashTransaction"]] = relationship(
        "CashTransaction", back_populates="segment", cascade="all, delete-orphan"
    )
    forecasts: Mapped[list["CashFlowForecast"]] = relationship("CashFlowForecast", back_populates="segment")
    kpi_snapshots: Mapped[list["KPISnapshot"]] = relationship("KPISnapshot", back_populates="segment")
    alerts: Mapped[list["RiskAlert"]] = relationship("RiskAlert", back_populates="segment")
    recommendations: Mapped[list["BusinessRecommendation"]] = relationship(
        "BusinessRecommendation", back_populates="segment"
    )
