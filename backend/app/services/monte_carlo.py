from __future__ import annotations

import logging
import math
import random
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.enums import ScenarioType
from app.models.simulation import SimulationResult
from app.services.history import MonthlyFlow, load_monthly_history
from app.utils import stats
from app.utils.dates import add_months
from app.utils.decimal_math import money


logger = logging.getLogger(__name__)

INFLOW_SCENARIO_MULTIPLIER = {
    ScenarioType.optimistic: 1.2,
    ScenarioType.base: 1.0,
    ScenarioType.pessimistic: 0.8,
    ScenarioType.stress_test: 0.6,
}
OUTFLOW_SCENARIO_MULTIPLIER = {
    ScenarioType.optimistic: 0.9,
    ScenarioType.base: 1.0,
    ScenarioType.pessimistic: 1.1,
    ScenarioType.stress_test: 1.3,
}

INFLOW_SEASONALITY = (0.9, 0.95, 1.1, 1.0, 0.95, 0.85, 0.8, 0.85, 1.0, 1.15, 1.3, 1.2)
OUTFLOW_SEASONALITY = (1.0, 1.0, 1.05, 1.0, 0.95, 0.9, 0.85, 0.9, 1.0, 1.1, 1.15, 1.1)

DEFAULT_GROWTH_MEAN = 0.05
DEFAULT_GROWTH_STD = 0.02
OUTFLOW_GROWTH_SHARE = 0.7
INFLOW_NOISE_STD = 0.10
OUTFLOW_NOISE_STD = 0.08

# Fixed coefficients, not derived from run data.
SENSITIVITY_COEFFICIENTS = {
    "inflow_impact": 0.8,
    "outflow_impact": -0.7,
    "growth_impact": 0.9,
    "seasonality_impact": 0.3,
}

PROGRESS_LOG_EVERY = 100


@dataclass(frozen=True)
class BaseParameters:
    inflow_mean: float
    inflow_std: float
    outflow_mean: float
    outflow_std: float
    growth_mean: float
    growth_std: float
    inflow_seasonality: tuple[float, ...]
    outflow_seasonality: tuple[float, ...]
    starting_balance: float


@dataclass(frozen=True)
class MonthResult:
    month: int
    inflow: float
    outflow: float
    net_flow: float
    cumulative_balance: float
    date: str


@dataclass(frozen=True)
class SimulationRun:
    run_number: int
    monthly_results: list[MonthResult]
    final_balance: float
    min_balance: float
    max_balance: float
    probability_negative: int
    runway_months: int | None


@dataclass(frozen=True)
class SimulationStatistics:
    mean_final_balance: float
    median_final_balance: float
    percentile_5: float
    percentile_95: float
    probability_negative: float
    average_runway: float
    worst_case_runway: int
    best_case_runway: int


@dataclass(frozen=True)
class SimulationOutcome:
    simulation_id: str
    parameters: dict[str, Any]
    runs: list[SimulationRun]
    statistics: SimulationStatistics
    sensitivity_analysis: dict[str, Any]


def _override(overrides: dict[str, float | None], key: str, fallback: float) -> float:
    value = overrides.get(key)
    return float(value) if value is not None else fallback


def estimate_base_parameters(
    history: list[MonthlyFlow],
    *,
    overrides: dict[str, float | None] | None = None,
    starting_balance: float,
) -> BaseParameters:
    """Derive sampling parameters from monthly history.

    Overrides win over computed statistics whenever they are not None, so an
    explicit 0 is kept. With no history both mean overrides are mandatory.
    """
    overrides = overrides or {}
    inflows = [float(row.inflow) for row in history]
    outflows = [float(row.outflow) for row in history]

    if not history and (
        overrides.get("base_inflow_mean") is None or overrides.get("base_outflow_mean") is None
    ):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                "Insufficient historical data for simulation. Provide base_inflow_mean and "
                "base_outflow_mean in custom_variables."
            ),
        )

    return BaseParameters(
        inflow_mean=_override(overrides, "base_inflow_mean", stats.mean(inflows)),
        inflow_std=_override(overrides, "base_inflow_std", stats.population_std(inflows)),
        outflow_mean=_override(overrides, "base_outflow_mean", stats.mean(outflows)),
        outflow_std=_override(overrides, "base_outflow_std", stats.population_std(outflows)),
        growth_mean=_override(overrides, "growth_rate_mean", DEFAULT_GROWTH_MEAN),
        growth_std=_override(overrides, "growth_rate_std", DEFAULT_GROWTH_STD),
        inflow_seasonality=INFLOW_SEASONALITY,
        outflow_seasonality=OUTFLOW_SEASONALITY,
        starting_balance=float(starting_balance),
    )


def _seasonal(table: tuple[float, ...], month: int) -> float:
    return table[month % 12] or 1.0


def run_single_simulation(
    params: BaseParameters,
    *,
    scenario: ScenarioType,
    time_horizon: int,
    run_number: int,
    rng: random.Random,
    as_of: date,
) -> SimulationRun:
    inflow_multiplier = INFLOW_SCENARIO_MULTIPLIER[scenario]
    outflow_multiplier = OUTFLOW_SCENARIO_MULTIPLIER[scenario]

    balance = params.starting_balance
    min_balance = balance
    max_balance = balance
    runway_months: int | None = None
    months: list[MonthResult] = []
    nets: list[float] = []

    for month in range(1, time_horizon + 1):
        inflow_growth = (1 + stats.normal(rng, params.growth_mean, params.growth_std)) ** month
        inflow = (
            stats.normal(rng, params.inflow_mean, params.inflow_std)
            * inflow_multiplier
            * inflow_growth
            * _seasonal(params.inflow_seasonality, month)
            * stats.normal(rng, 1.0, INFLOW_NOISE_STD)
        )
        inflow = max(0.0, inflow)

        outflow_growth = (
            1 + stats.normal(rng, params.growth_mean * OUTFLOW_GROWTH_SHARE, params.growth_std)
        ) ** month
        outflow = (
            stats.normal(rng, params.outflow_mean, params.outflow_std)
            * outflow_multiplier
            * outflow_growth
            * _seasonal(params.outflow_seasonality, month)
            * stats.normal(rng, 1.0, OUTFLOW_NOISE_STD)
        )
        outflow = max(0.0, outflow)

        net_flow = inflow - outflow
        balance += net_flow
        min_balance = min(min_balance, balance)
        max_balance = max(max_balance, balance)
        nets.append(net_flow)

        # last solvent month before the first negative crossing
        if balance < 0 and runway_months is None:
            runway_months = month - 1

        months.append(
            MonthResult(
                month=month,
                inflow=inflow,
                outflow=outflow,
                net_flow=net_flow,
                cumulative_balance=balance,
                date=add_months(as_of, month).isoformat(),
            )
        )

    if runway_months is None:
        burns = [abs(net) for net in nets if net < 0]
        avg_burn = stats.mean(burns)
        if avg_burn > 0:
            runway_months = int(math.floor(balance / avg_burn))

    return SimulationRun(
        run_number=run_number,
        monthly_results=months,
        final_balance=balance,
        min_balance=min_balance,
        max_balance=max_balance,
        probability_negative=1 if min_balance < 0 else 0,
        runway_months=runway_months,
    )


def calculate_statistics(runs: list[SimulationRun]) -> SimulationStatistics:
    if not runs:
        return SimulationStatistics(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0, 0)

    finals = sorted(run.final_balance for run in runs)
    runways = [run.runway_months for run in runs if run.runway_months is not None]
    negatives = sum(1 for run in runs if run.min_balance < 0)
    return SimulationStatistics(
        mean_final_balance=stats.mean(finals),
        median_final_balance=stats.order_statistic(finals, 0.5),
        percentile_5=stats.order_statistic(finals, 0.05),
        percentile_95=stats.order_statistic(finals, 0.95),
        probability_negative=negatives / len(runs),
        average_runway=stats.mean(runways),
        worst_case_runway=min(runways) if runways else 0,
        best_case_runway=max(runways) if runways else 0,
    )


def sensitivity_analysis() -> dict[str, Any]:
    return {**SENSITIVITY_COEFFICIENTS, "basis": "illustrative"}


def simulate(
    params: BaseParameters,
    *,
    num_runs: int,
    time_horizon: int,
    scenario: ScenarioType,
    rng: random.Random,
    as_of: date,
) -> list[SimulationRun]:
    runs: list[SimulationRun] = []
    for run_number in range(1, num_runs + 1):
        runs.append(
            run_single_simulation(
                params,
                scenario=scenario,
                time_horizon=time_horizon,
                run_number=run_number,
                rng=rng,
                as_of=as_of,
            )
        )
        if run_number % PROGRESS_LOG_EVERY == 0:
            logger.info("Completed %s/%s simulation runs", run_number, num_runs)
    return runs


def new_simulation_id() -> str:
    return f"sim_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def save_simulation_results(
    db: Session,
    *,
    simulation_id: str,
    runs: list[SimulationRun],
    scenario: ScenarioType,
    time_horizon: int,
    num_runs: int,
    segment_id: int | None,
    batch_size: int,
) -> int:
    saved = 0
    for offset in range(0, len(runs), batch_size):
        batch = runs[offset : offset + batch_size]
        try:
            db.add_all(
                [
                    SimulationResult(
                        simulation_id=simulation_id,
                        run_number=run.run_number,
                        scenario=scenario,
                        time_horizon=time_horizon,
                        num_runs=num_runs,
                        segment_id=segment_id,
                        monthly_results=[asdict(row) for row in run.monthly_results],
                        final_balance=money(run.final_balance),
                        min_balance=money(run.min_balance),
                        max_balance=money(run.max_balance),
                        probability_negative=run.probability_negative,
                        runway_months=run.runway_months,
                    )
                    for run in batch
                ]
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(
                "Simulation %s batch at offset %s failed after %s saved runs",
                simulation_id,
                offset,
                saved,
            )
            raise
        saved += len(batch)
    return saved


def run_simulation(
    db: Session,
    *,
    num_runs: int,
    time_horizon: int,
    scenario: ScenarioType = ScenarioType.base,
    segment_id: int | None = None,
    custom_variables: dict[str, float | None] | None = None,
    seed: int | None = None,
    rng: random.Random | None = None,
    as_of: date | None = None,
) -> SimulationOutcome:
    settings = get_settings()
    as_of = as_of or date.today()
    rng = rng or random.Random(seed)

    history = load_monthly_history(db, segment_id=segment_id, months=settings.history_months, as_of=as_of)
    params = estimate_base_parameters(
        history,
        overrides=custom_variables,
        starting_balance=settings.simulation_starting_balance,
    )

    simulation_id = new_simulation_id()
    logger.info(
        "Starting simulation %s: runs=%s horizon=%s scenario=%s segment=%s",
        simulation_id,
        num_runs,
        time_horizon,
        scenario.value,
        segment_id,
    )
    runs = simulate(
        params,
        num_runs=num_runs,
        time_horizon=time_horizon,
        scenario=scenario,
        rng=rng,
        as_of=as_of,
    )
    statistics = calculate_statistics(runs)
    save_simulation_results(
        db,
        simulation_id=simulation_id,
        runs=runs,
        scenario=scenario,
        time_horizon=time_horizon,
        num_runs=num_runs,
        segment_id=segment_id,
        batch_size=settings.simulation_batch_size,
    )

    return SimulationOutcome(
        simulation_id=simulation_id,
        parameters={
            "num_runs": num_runs,
            "time_horizon": time_horizon,
            "scenario": scenario.value,
            "segment_id": segment_id,
            "custom_variables": custom_variables,
            "seed": seed,
            "base_parameters": {
                "inflow_mean": params.inflow_mean,
                "inflow_std": params.inflow_std,
                "outflow_mean": params.outflow_mean,
                "outflow_std": params.outflow_std,
                "growth_mean": params.growth_mean,
                "growth_std": params.growth_std,
                "starting_balance": params.starting_balance,
                "history_months": len(history),
            },
        },
        runs=runs,
        statistics=statistics,
        sensitivity_analysis=sensitivity_analysis(),
    )


def list_simulation_runs(db: Session, simulation_id: str, *, limit: int = 100) -> list[SimulationResult]:
    rows = list(
        db.scalars(
            select(SimulationResult)
            .where(SimulationResult.simulation_id == simulation_id)
            .order_by(SimulationResult.run_number.asc())
            .limit(limit)
        ).all()
    )
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Simulation not found.")
    return rows


def recent_simulations(db: Session, *, limit: int = 20) -> list[dict[str, Any]]:
    rows = db.execute(
        select(
            SimulationResult.simulation_id,
            SimulationResult.scenario,
            SimulationResult.time_horizon,
            SimulationResult.num_runs,
            func.max(SimulationResult.created_at).label("created_at"),
            func.avg(SimulationResult.final_balance).label("avg_final_balance"),
            func.avg(SimulationResult.probability_negative).label("avg_probability_negative"),
            func.avg(SimulationResult.runway_months).label("avg_runway"),
        )
        .group_by(
            SimulationResult.simulation_id,
            SimulationResult.scenario,
            SimulationResult.time_horizon,
            SimulationResult.num_runs,
        )
        .order_by(func.max(SimulationResult.created_at).desc(), SimulationResult.simulation_id.desc())
        .limit(limit)
    ).all()
    return [
        {
            "simulation_id": row.simulation_id,
            "scenario": row.scenario,
            "time_horizon": row.time_horizon,
            "num_runs": row.num_runs,
            "created_at": row.created_at,
            "avg_final_balance": float(row.avg_final_balance or 0),
            "avg_probability_negative": float(row.avg_probability_negative or 0),
            "avg_runway": float(row.avg_runway) if row.avg_runway is not None else None,
        }
        for row in rows
    ]
