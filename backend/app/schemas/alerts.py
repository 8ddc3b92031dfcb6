from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from app.models.enums import AlertSeverity, AlertType
from app.schemas.common import ORMModel


class RiskAlertOut(ORMModel):
    id: int
    segment_id: int | None = None
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    affected_amount: Decimal | None = None
    recommendations: list[str] | None = None
    triggered_by: dict[str, Any] | None = None
    is_resolved: bool
    triggered_at: datetime | None = None
    resolved_at: datetime | None = None


class AlertTrendPoint(BaseModel):
    date: str
    count: int
    critical: int
    high: int


class AlertSummaryOut(BaseModel):
    total: int
    counts_by_severity: dict[str, int]
    trends: list[AlertTrendPoint]


class AlertListResponse(BaseModel):
    alerts: list[RiskAlertOut]
    summary: AlertSummaryOut
    filters: dict[str, Any]


class AlertEvaluateResponse(BaseModel):
    created: int
    alerts: list[RiskAlertOut]


class AlertUpdateRequest(BaseModel):
    is_resolved: bool
