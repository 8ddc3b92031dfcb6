from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Float, ForeignKey, Integer, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class KPISnapshot(Base):
    __tablename__ = "kpi_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # NULL segment means the company-wide roll-up
    segment_id: Mapped[int | None] = mapped_column(
        ForeignKey("business_segments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    snapshot_date: Mapped[date] = mapped_column(nullable=False, index=True)

    total_inflow: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    total_outflow: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    net_cash_flow: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    burn_rate: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    cash_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    runway_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    working_capital_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    monthly_growth_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    segment: Mapped["BusinessSegment | None"] = relationship("BusinessSegment", back_populates="kpi_snapshots")
