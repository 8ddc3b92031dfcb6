from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel


class CashFlowSummaryOut(BaseModel):
    total_inflow: Decimal
    total_outflow: Decimal
    net_cash_flow: Decimal
    transaction_count: int
    period: str


class MonthlyTrendPoint(BaseModel):
    month: str
    date: date
    inflow: Decimal
    outflow: Decimal
    net_flow: Decimal


class SegmentPerformanceOut(BaseModel):
    segment_id: int
    segment_name: str
    total_inflow: Decimal
    total_outflow: Decimal
    net_cash_flow: Decimal
    growth_rate: float | None = None
    transaction_count: int


class AgingAnalysisOut(BaseModel):
    buckets: dict[str, Decimal]
    total_outstanding: Decimal
    average_aging_days: float
    receivable_count: int


class CashFlowResponse(BaseModel):
    summary: CashFlowSummaryOut
    monthly_trend: list[MonthlyTrendPoint]
    segment_performance: list[SegmentPerformanceOut]
    aging_analysis: AgingAnalysisOut
    filters: dict[str, Any]
