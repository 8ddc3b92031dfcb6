from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from app.schemas.common import ORMModel


class KPISnapshotOut(ORMModel):
    id: int
    segment_id: int | None = None
    snapshot_date: date
    total_inflow: Decimal
    total_outflow: Decimal
    net_cash_flow: Decimal
    burn_rate: Decimal
    cash_balance: Decimal
    runway_months: int | None = None
    working_capital_ratio: float | None = None
    monthly_growth_rate: float | None = None
    created_at: datetime | None = None


class KPIChangesOut(BaseModel):
    net_cash_flow_change: float | None = None
    burn_rate_change: float | None = None
    inflow_change: float | None = None


class KPIOverviewResponse(BaseModel):
    current: KPISnapshotOut
    trends: list[KPISnapshotOut]
    changes: KPIChangesOut | None = None
