from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import ScenarioType
from app.schemas.common import CaseInsensitive, ORMModel


# fits Numeric(24, 2) with headroom for compounding over the horizon
MAX_MONTHLY_AMOUNT = 1e15


class CustomVariables(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    base_inflow_mean: float | None = Field(default=None, ge=0, le=MAX_MONTHLY_AMOUNT)
    base_inflow_std: float | None = Field(default=None, ge=0, le=MAX_MONTHLY_AMOUNT)
    base_outflow_mean: float | None = Field(default=None, ge=0, le=MAX_MONTHLY_AMOUNT)
    base_outflow_std: float | None = Field(default=None, ge=0, le=MAX_MONTHLY_AMOUNT)
    growth_rate_mean: float | None = Field(default=None, ge=-1, le=1)
    growth_rate_std: float | None = Field(default=None, ge=0, le=1)


class SimulationRequest(BaseModel):
    num_runs: int = Field(default=1000, ge=100, le=2000)
    time_horizon: int = Field(default=12, ge=1, le=36, description="Months to project.")
    scenario: Annotated[ScenarioType, CaseInsensitive] = ScenarioType.base
    segment_id: int | None = None
    custom_variables: CustomVariables | None = None
    seed: int | None = Field(default=None, description="Fix the random source for reproducible runs.")


class MonthResultOut(ORMModel):
    month: int
    inflow: float
    outflow: float
    net_flow: float
    cumulative_balance: float
    date: str


class SimulationRunOut(ORMModel):
    run_number: int
    monthly_results: list[MonthResultOut]
    final_balance: float
    min_balance: float
    max_balance: float
    probability_negative: int
    runway_months: int | None = None


class SimulationStatisticsOut(ORMModel):
    mean_final_balance: float
    median_final_balance: float
    percentile_5: float
    percentile_95: float
    probability_negative: float
    average_runway: float
    worst_case_runway: int
    best_case_runway: int


class SensitivityAnalysisOut(BaseModel):
    inflow_impact: float
    outflow_impact: float
    growth_impact: float
    seasonality_impact: float
    basis: str


class SimulationResponse(BaseModel):
    simulation_id: str
    parameters: dict[str, Any]
    statistics: SimulationStatisticsOut
    sensitivity_analysis: SensitivityAnalysisOut
    sample_runs: list[SimulationRunOut]
    total_runs: int


class StoredSimulationRunOut(ORMModel):
    id: int
    simulation_id: str
    run_number: int
    scenario: ScenarioType
    time_horizon: int
    num_runs: int
    segment_id: int | None = None
    monthly_results: list[MonthResultOut]
    final_balance: Decimal
    min_balance: Decimal
    max_balance: Decimal
    probability_negative: int
    runway_months: int | None = None
    created_at: datetime


class SimulationRunsResponse(BaseModel):
    simulation_id: str
    runs: list[StoredSimulationRunOut]
    total: int


class RecentSimulationOut(ORMModel):
    simulation_id: str
    scenario: ScenarioType
    time_horizon: int
    num_runs: int
    created_at: datetime | None = None
    avg_final_balance: float
    avg_probability_negative: float
    avg_runway: float | None = None


class RecentSimulationsResponse(BaseModel):
    simulations: list[RecentSimulationOut]
