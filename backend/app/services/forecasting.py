from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.enums import ForecastModel, ScenarioType
from app.models.forecast import CashFlowForecast
from app.services.history import MonthlyFlow, load_monthly_history
from app.services.monte_carlo import INFLOW_SEASONALITY
from app.utils import stats
from app.utils.dates import add_months, month_start
from app.utils.decimal_math import money


logger = logging.getLogger(__name__)

SCENARIO_MULTIPLIER = {
    ScenarioType.optimistic: 1.15,
    ScenarioType.base: 1.0,
    ScenarioType.pessimistic: 0.85,
    ScenarioType.stress_test: 0.7,
}
ENSEMBLE_WEIGHTS = {
    ForecastModel.regression: 0.3,
    ForecastModel.arima: 0.3,
    ForecastModel.prophet: 0.4,
}
Z_95 = 1.96
MIN_CONFIDENCE = 0.6
CONFIDENCE_DECAY = 0.05
PROPHET_CONFIDENCE_CAP = 0.95


@dataclass(frozen=True)
class ForecastPoint:
    date: date
    predicted: float
    confidence: float
    lower_bound: float
    upper_bound: float
    model: ForecastModel
    scenario: ScenarioType


@dataclass(frozen=True)
class ForecastPayload:
    points: list[ForecastPoint]
    historical: list[MonthlyFlow]
    parameters: dict[str, Any]


def _seasonal_factor(value: date) -> float:
    return INFLOW_SEASONALITY[value.month - 1]


def regression_forecast(
    series: list[float],
    *,
    horizon: int,
    scenario: ScenarioType,
    as_of: date,
) -> list[ForecastPoint]:
    """Linear trend extrapolation with scenario and seasonal scaling.

    Steps are monthly starting the month after ``as_of``. The band width is
    the 95% z-score on the sample standard deviation of the history, narrowed
    by the step confidence.
    """
    n = len(series)
    slope, intercept = stats.linear_trend(series)
    spread = math.sqrt(stats.sample_variance(series))
    multiplier = SCENARIO_MULTIPLIER[scenario]
    anchor = month_start(as_of)

    points: list[ForecastPoint] = []
    for step in range(1, horizon + 1):
        point_date = add_months(anchor, step)
        predicted = (slope * (n + step) + intercept) * multiplier * _seasonal_factor(point_date)
        confidence = max(MIN_CONFIDENCE, 1 - CONFIDENCE_DECAY * step)
        bound = Z_95 * spread * confidence
        points.append(
            ForecastPoint(
                date=point_date,
                predicted=stats.round_half_up(predicted),
                confidence=confidence,
                lower_bound=stats.round_half_up(predicted - bound),
                upper_bound=stats.round_half_up(predicted + bound),
                model=ForecastModel.regression,
                scenario=scenario,
            )
        )
    return points


def arima_forecast(base: list[ForecastPoint]) -> list[ForecastPoint]:
    return [
        ForecastPoint(
            date=point.date,
            predicted=point.predicted * (1 + 0.1 * math.sin(index / 3)),
            confidence=point.confidence,
            lower_bound=point.lower_bound,
            upper_bound=point.upper_bound,
            model=ForecastModel.arima,
            scenario=point.scenario,
        )
        for index, point in enumerate(base)
    ]


def prophet_forecast(base: list[ForecastPoint]) -> list[ForecastPoint]:
    rows: list[ForecastPoint] = []
    for index, point in enumerate(base):
        weekly = 0.05 * math.sin(2 * math.pi * index / 4)
        seasonal = 0.2 * (_seasonal_factor(point.date) - 1)
        rows.append(
            ForecastPoint(
                date=point.date,
                predicted=stats.round_half_up(point.predicted * (1 + weekly + seasonal)),
                confidence=min(point.confidence * 1.1, PROPHET_CONFIDENCE_CAP),
                lower_bound=point.lower_bound,
                upper_bound=point.upper_bound,
                model=ForecastModel.prophet,
                scenario=point.scenario,
            )
        )
    return rows


def ensemble_forecast(base: list[ForecastPoint]) -> list[ForecastPoint]:
    arima = arima_forecast(base)
    prophet = prophet_forecast(base)
    rows: list[ForecastPoint] = []
    for reg_point, arima_point, prophet_point in zip(base, arima, prophet):
        predictions = [reg_point.predicted, arima_point.predicted, prophet_point.predicted]
        combined = (
            ENSEMBLE_WEIGHTS[ForecastModel.regression] * reg_point.predicted
            + ENSEMBLE_WEIGHTS[ForecastModel.arima] * arima_point.predicted
            + ENSEMBLE_WEIGHTS[ForecastModel.prophet] * prophet_point.predicted
        )
        # disagreement between the members, not data variance
        bound = 1.5 * math.sqrt(stats.population_variance(predictions, center=combined))
        rows.append(
            ForecastPoint(
                date=reg_point.date,
                predicted=stats.round_half_up(combined),
                confidence=stats.mean(
                    [reg_point.confidence, arima_point.confidence, prophet_point.confidence]
                ),
                lower_bound=stats.round_half_up(combined - bound),
                upper_bound=stats.round_half_up(combined + bound),
                model=ForecastModel.ensemble,
                scenario=reg_point.scenario,
            )
        )
    return rows


def generate_forecast(
    series: list[float],
    *,
    model: ForecastModel,
    horizon: int,
    scenario: ScenarioType,
    as_of: date,
) -> list[ForecastPoint]:
    base = regression_forecast(series, horizon=horizon, scenario=scenario, as_of=as_of)
    if model == ForecastModel.regression:
        return base
    if model in (ForecastModel.arima, ForecastModel.lstm):
        return arima_forecast(base)
    if model == ForecastModel.prophet:
        return prophet_forecast(base)
    return ensemble_forecast(base)


def build_forecast(
    db: Session,
    *,
    horizon: int,
    model: ForecastModel = ForecastModel.ensemble,
    scenario: ScenarioType = ScenarioType.base,
    segment_id: int | None = None,
    as_of: date | None = None,
) -> ForecastPayload:
    settings = get_settings()
    as_of = as_of or date.today()
    history = load_monthly_history(db, segment_id=segment_id, months=settings.history_months, as_of=as_of)
    series = [float(row.net_flow) for row in history]
    if not series:
        logger.info("No history for segment %s; forecasting from a flat zero trend", segment_id)

    points = generate_forecast(series, model=model, horizon=horizon, scenario=scenario, as_of=as_of)
    return ForecastPayload(
        points=points,
        historical=history,
        parameters={
            "horizon": horizon,
            "model": model.value,
            "scenario": scenario.value,
            "segment_id": segment_id,
            "history_months": len(series),
        },
    )


def save_forecasts(
    db: Session,
    points: list[ForecastPoint],
    *,
    segment_id: int | None = None,
) -> list[CashFlowForecast]:
    rows = [
        CashFlowForecast(
            segment_id=segment_id,
            forecast_date=point.date,
            predicted_amount=money(point.predicted),
            confidence=point.confidence,
            lower_bound=money(point.lower_bound),
            upper_bound=money(point.upper_bound),
            model_type=point.model,
            scenario=point.scenario,
        )
        for point in points
    ]
    db.add_all(rows)
    db.flush()
    return rows


def _forecast_query(
    *,
    segment_id: int | None,
    model: ForecastModel | None,
    scenario: ScenarioType | None,
):
    query = select(CashFlowForecast)
    if segment_id is not None:
        query = query.where(CashFlowForecast.segment_id == segment_id)
    if model is not None:
        query = query.where(CashFlowForecast.model_type == model)
    if scenario is not None:
        query = query.where(CashFlowForecast.scenario == scenario)
    return query


def stored_forecasts(
    db: Session,
    *,
    start: date,
    end: date,
    segment_id: int | None = None,
    model: ForecastModel | None = None,
    scenario: ScenarioType | None = None,
) -> list[CashFlowForecast]:
    query = _forecast_query(segment_id=segment_id, model=model, scenario=scenario).where(
        CashFlowForecast.forecast_date >= start,
        CashFlowForecast.forecast_date <= end,
    )
    return list(
        db.scalars(query.order_by(CashFlowForecast.forecast_date.asc(), CashFlowForecast.id.asc())).all()
    )


def forecast_accuracy(
    db: Session,
    *,
    segment_id: int | None = None,
    model: ForecastModel | None = None,
    scenario: ScenarioType | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Mean absolute percentage error over realised stored forecasts.

    A zero actual contributes zero error rather than dividing by zero.
    """
    settings = get_settings()
    today = today or date.today()
    query = _forecast_query(segment_id=segment_id, model=model, scenario=scenario).where(
        CashFlowForecast.actual_amount.is_not(None),
        CashFlowForecast.forecast_date <= today,
    )
    rows = list(
        db.scalars(
            query.order_by(CashFlowForecast.forecast_date.desc(), CashFlowForecast.id.desc()).limit(
                settings.forecast_accuracy_sample
            )
        ).all()
    )
    if not rows:
        return {"mape": None, "accuracy": None, "sample_size": 0}

    errors: list[float] = []
    for row in rows:
        actual = float(row.actual_amount)
        predicted = float(row.predicted_amount)
        errors.append(abs((actual - predicted) / actual) if actual != 0 else 0.0)
    mape = stats.mean(errors)
    return {
        "mape": mape * 100,
        "accuracy": max(0.0, 1 - mape) * 100,
        "sample_size": len(rows),
    }
