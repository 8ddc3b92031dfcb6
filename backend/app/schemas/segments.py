from datetime import datetime

from pydantic import BaseModel


class SegmentOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_active: bool
    transaction_count: int
    forecast_count: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SegmentListResponse(BaseModel):
    segments: list[SegmentOut]


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    latency_ms: float
    data: dict[str, int]
