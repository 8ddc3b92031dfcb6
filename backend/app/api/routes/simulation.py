import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.config import get_settings
from app.schemas.simulation import (
    RecentSimulationOut,
    RecentSimulationsResponse,
    SimulationRequest,
    SimulationResponse,
    SimulationRunOut,
    SimulationRunsResponse,
    SimulationStatisticsOut,
    StoredSimulationRunOut,
)
from app.services.monte_carlo import list_simulation_runs, recent_simulations, run_simulation


logger = logging.getLogger(__name__)
router = APIRouter(tags=["simulation"])


@router.post("/simulation", response_model=SimulationResponse)
def create_simulation(payload: SimulationRequest, db: Session = Depends(get_db)) -> SimulationResponse:
    settings = get_settings()
    custom_variables = payload.custom_variables.model_dump() if payload.custom_variables else None
    try:
        outcome = run_simulation(
            db,
            num_runs=payload.num_runs,
            time_horizon=payload.time_horizon,
            scenario=payload.scenario,
            segment_id=payload.segment_id,
            custom_variables=custom_variables,
            seed=payload.seed,
        )
    except (SQLAlchemyError, ArithmeticError):
        db.rollback()
        logger.exception("Monte Carlo simulation failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run Monte Carlo simulation.",
        )

    return SimulationResponse(
        simulation_id=outcome.simulation_id,
        parameters=outcome.parameters,
        statistics=SimulationStatisticsOut.model_validate(outcome.statistics),
        sensitivity_analysis=outcome.sensitivity_analysis,
        sample_runs=[
            SimulationRunOut.model_validate(run) for run in outcome.runs[: settings.simulation_sample_runs]
        ],
        total_runs=len(outcome.runs),
    )


@router.get("/simulation", response_model=SimulationRunsResponse | RecentSimulationsResponse)
def get_simulations(
    simulation_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
) -> SimulationRunsResponse | RecentSimulationsResponse:
    if simulation_id:
        rows = list_simulation_runs(db, simulation_id, limit=limit)
        return SimulationRunsResponse(
            simulation_id=simulation_id,
            runs=[StoredSimulationRunOut.model_validate(row) for row in rows],
            total=len(rows),
        )
    return RecentSimulationsResponse(
        simulations=[RecentSimulationOut.model_validate(row) for row in recent_simulations(db)],
    )
