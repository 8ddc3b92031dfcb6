from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import ForecastModel, ScenarioType


class CashFlowForecast(Base):
    __tablename__ = "cash_flow_forecasts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    segment_id: Mapped[int | None] = mapped_column(
        ForeignKey("business_segments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    forecast_date: Mapped[date] = mapped_column(nullable=False, index=True)
    predicted_amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    actual_amount: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    lower_bound: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    upper_bound: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    model_type: Mapped[ForecastModel] = mapped_column(Enum(ForecastModel, name="forecast_model"), nullable=False)
    scenario: Mapped[ScenarioType] = mapped_column(
        Enum(ScenarioType, name="scenario_type"),
        default=ScenarioType.base,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    segment: Mapped["BusinessSegment | None"] = relationship("BusinessSegment", back_populates="forecasts")
