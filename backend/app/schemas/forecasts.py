from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import ForecastModel, ScenarioType
from app.schemas.common import CaseInsensitive, ORMModel


class ForecastRequest(BaseModel):
    horizon: int = Field(default=12, ge=1, le=36)
    model: Annotated[ForecastModel, CaseInsensitive] = ForecastModel.ensemble
    scenario: Annotated[ScenarioType, CaseInsensitive] = ScenarioType.base
    segment_id: int | None = None


class ForecastPointOut(ORMModel):
    date: date
    predicted: float
    confidence: float
    lower_bound: float
    upper_bound: float
    model: ForecastModel
    scenario: ScenarioType


class HistoricalFlowOut(ORMModel):
    month_key: str
    month_start: date
    inflow: Decimal
    outflow: Decimal
    net_flow: Decimal


class StoredForecastOut(ORMModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True, protected_namespaces=())

    id: int
    segment_id: int | None = None
    forecast_date: date
    predicted_amount: Decimal
    actual_amount: Decimal | None = None
    confidence: float
    lower_bound: Decimal
    upper_bound: Decimal
    model_type: ForecastModel
    scenario: ScenarioType
    created_at: datetime


class ForecastAccuracyOut(BaseModel):
    mape: float | None = None
    accuracy: float | None = None
    sample_size: int


class ForecastResponse(BaseModel):
    forecasts: list[ForecastPointOut]
    historical: list[HistoricalFlowOut]
    stored_forecasts: list[StoredForecastOut]
    accuracy: ForecastAccuracyOut
    parameters: dict[str, Any]


class ForecastSaveResponse(BaseModel):
    saved: int
    forecasts: list[StoredForecastOut]
    parameters: dict[str, Any]
