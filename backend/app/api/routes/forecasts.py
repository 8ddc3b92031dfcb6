import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.enums import ForecastModel, ScenarioType
from app.schemas.common import CaseInsensitive
from app.schemas.forecasts import (
    ForecastAccuracyOut,
    ForecastPointOut,
    ForecastRequest,
    ForecastResponse,
    ForecastSaveResponse,
    HistoricalFlowOut,
    StoredForecastOut,
)
from app.services.forecasting import build_forecast, forecast_accuracy, save_forecasts, stored_forecasts
from app.utils.dates import add_months


logger = logging.getLogger(__name__)
router = APIRouter(tags=["forecasts"])


@router.get("/forecasts", response_model=ForecastResponse)
def get_forecasts(
    horizon: int = Query(default=12, ge=1, le=36),
    model: Annotated[ForecastModel, CaseInsensitive] = Query(default=ForecastModel.ensemble),
    scenario: Annotated[ScenarioType, CaseInsensitive] = Query(default=ScenarioType.base),
    segment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> ForecastResponse:
    today = date.today()
    try:
        payload = build_forecast(
            db,
            horizon=horizon,
            model=model,
            scenario=scenario,
            segment_id=segment_id,
            as_of=today,
        )
        stored = stored_forecasts(
            db,
            start=today,
            end=add_months(today, horizon),
            segment_id=segment_id,
            model=model,
            scenario=scenario,
        )
        accuracy = forecast_accuracy(db, segment_id=segment_id, model=model, scenario=scenario, today=today)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Forecast generation failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate forecasts.",
        )

    return ForecastResponse(
        forecasts=[ForecastPointOut.model_validate(point) for point in payload.points],
        historical=[HistoricalFlowOut.model_validate(row) for row in payload.historical],
        stored_forecasts=[StoredForecastOut.model_validate(row) for row in stored],
        accuracy=ForecastAccuracyOut(**accuracy),
        parameters=payload.parameters,
    )


@router.post("/forecasts", response_model=ForecastSaveResponse)
def create_forecasts(payload: ForecastRequest, db: Session = Depends(get_db)) -> ForecastSaveResponse:
    try:
        result = build_forecast(
            db,
            horizon=payload.horizon,
            model=payload.model,
            scenario=payload.scenario,
            segment_id=payload.segment_id,
        )
        rows = save_forecasts(db, result.points, segment_id=payload.segment_id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Forecast generation failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate forecasts.",
        )

    return ForecastSaveResponse(
        saved=len(rows),
        forecasts=[StoredForecastOut.model_validate(row) for row in rows],
        parameters=result.parameters,
    )
