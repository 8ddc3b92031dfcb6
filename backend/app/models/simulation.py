from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import ScenarioType


class SimulationResult(Base):
    __tablename__ = "simulation_results"
    __table_args__ = (
        UniqueConstraint("simulation_id", "run_number", name="uq_simulation_results_sim_run"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    simulation_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    run_number: Mapped[int] = mapped_column(Integer, nullable=False)
    scenario: Mapped[ScenarioType] = mapped_column(
        Enum(ScenarioType, name="scenario_type"),
        nullable=False,
    )
    time_horizon: Mapped[int] = mapped_column(Integer, nullable=False)
    num_runs: Mapped[int] = mapped_column(Integer, nullable=False)
    segment_id: Mapped[int | None] = mapped_column(
        ForeignKey("business_segments.id", ondelete="SET NULL"),
        nullable=True,
    )
    monthly_results: Mapped[list] = mapped_column(JSON, nullable=False)
    final_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    min_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    max_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    probability_negative: Mapped[int] = mapped_column(Integer, nullable=False)
    runway_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
