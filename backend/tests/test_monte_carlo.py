import math
import random
import re
from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.models.enums import ScenarioType, TransactionType
from app.models.segment import BusinessSegment
from app.models.simulation import SimulationResult
from app.models.transaction import CashTransaction
from app.services.history import MonthlyFlow
from app.services.monte_carlo import (
    INFLOW_SEASONALITY,
    OUTFLOW_SEASONALITY,
    BaseParameters,
    SimulationRun,
    calculate_statistics,
    estimate_base_parameters,
    list_simulation_runs,
    recent_simulations,
    run_simulation,
    run_single_simulation,
    save_simulation_results,
    sensitivity_analysis,
    simulate,
)
from app.utils.dates import add_months
from app.utils.decimal_math import money


AS_OF = date(2024, 12, 31)


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _params(**overrides) -> BaseParameters:
    values = {
        "inflow_mean": 500_000.0,
        "inflow_std": 50_000.0,
        "outflow_mean": 400_000.0,
        "outflow_std": 40_000.0,
        "growth_mean": 0.05,
        "growth_std": 0.02,
        "inflow_seasonality": INFLOW_SEASONALITY,
        "outflow_seasonality": OUTFLOW_SEASONALITY,
        "starting_balance": 500_000.0,
    }
    values.update(overrides)
    return BaseParameters(**values)


def _runs(params: BaseParameters, *, num_runs: int, horizon: int, seed: int, scenario=ScenarioType.base):
    return simulate(
        params,
        num_runs=num_runs,
        time_horizon=horizon,
        scenario=scenario,
        rng=random.Random(seed),
        as_of=AS_OF,
    )


def _flow(key: str, inflow: str, outflow: str) -> MonthlyFlow:
    year, month = (int(part) for part in key.split("-"))
    return MonthlyFlow(
        month_key=key,
        month_start=date(year, month, 1),
        inflow=money(inflow),
        outflow=money(outflow),
    )


def _stub_run(number: int, final: float, *, min_balance: float = 0.0, runway: int | None = None) -> SimulationRun:
    return SimulationRun(
        run_number=number,
        monthly_results=[],
        final_balance=final,
        min_balance=min_balance,
        max_balance=max(final, 0.0),
        probability_negative=1 if min_balance < 0 else 0,
        runway_months=runway,
    )


def _seed_history(db: Session, *, inflow: str, outflow: str, months: int = 24) -> BusinessSegment:
    segment = BusinessSegment(name="Retail", description="Stores", is_active=True)
    db.add(segment)
    db.flush()
    first = date(AS_OF.year, AS_OF.month, 15)
    for offset in range(months):
        tx_date = add_months(first, -offset)
        db.add_all(
            [
                CashTransaction(
                    segment_id=segment.id,
                    tx_date=tx_date,
                    amount=money(inflow),
                    direction=TransactionType.inflow,
                    category="sales",
                ),
                CashTransaction(
                    segment_id=segment.id,
                    tx_date=tx_date,
                    amount=money(outflow),
                    direction=TransactionType.outflow,
                    category="payroll",
                ),
            ]
        )
    db.commit()
    return segment


def test_balances_stay_within_run_min_and_max() -> None:
    runs = _runs(_params(outflow_mean=520_000.0), num_runs=200, horizon=24, seed=3)
    for run in runs:
        assert run.min_balance <= run.max_balance
        for row in run.monthly_results:
            assert run.min_balance <= row.cumulative_balance <= run.max_balance
        went_negative = any(row.cumulative_balance < 0 for row in run.monthly_results)
        assert run.probability_negative == (1 if went_negative else 0)


def test_runway_is_last_month_before_first_negative_balance() -> None:
    params = _params(inflow_mean=100_000.0, inflow_std=10_000.0, outflow_mean=300_000.0, outflow_std=10_000.0)
    runs = _runs(params, num_runs=100, horizon=12, seed=5)
    crossed = [run for run in runs if run.min_balance < 0]
    assert crossed
    for run in crossed:
        balances = [params.starting_balance] + [row.cumulative_balance for row in run.monthly_results]
        runway = run.runway_months
        assert runway is not None
        assert balances[runway] >= 0
        assert balances[runway + 1] < 0
        assert all(value >= 0 for value in balances[: runway + 1])


def test_runway_extrapolates_from_average_burn_when_solvent() -> None:
    runs = _runs(_params(outflow_mean=480_000.0, outflow_std=80_000.0), num_runs=150, horizon=6, seed=9)
    solvent = [run for run in runs if run.min_balance >= 0]
    assert solvent
    for run in solvent:
        burns = [abs(row.net_flow) for row in run.monthly_results if row.net_flow < 0]
        if burns:
            assert run.runway_months == math.floor(run.final_balance / (sum(burns) / len(burns)))
        else:
            assert run.runway_months is None


def test_runway_is_zero_when_first_month_goes_negative() -> None:
    params = _params(starting_balance=1_000.0, inflow_mean=0.0, inflow_std=0.0, outflow_mean=5_000.0, outflow_std=0.0)
    run = run_single_simulation(
        params,
        scenario=ScenarioType.base,
        time_horizon=6,
        run_number=1,
        rng=random.Random(1),
        as_of=AS_OF,
    )
    assert run.runway_months == 0
    assert run.probability_negative == 1
    assert run.max_balance == 1_000.0


def test_aggregate_probability_is_exact_fraction_of_negative_runs() -> None:
    runs = _runs(_params(outflow_mean=500_000.0, outflow_std=120_000.0), num_runs=300, horizon=12, seed=21)
    statistics = calculate_statistics(runs)
    negatives = sum(1 for run in runs if run.min_balance < 0)
    assert statistics.probability_negative == negatives / len(runs)
    assert statistics.probability_negative == sum(run.probability_negative for run in runs) / len(runs)


def test_seeded_runs_are_reproducible() -> None:
    params = _params()
    first = _runs(params, num_runs=50, horizon=12, seed=42)
    second = _runs(params, num_runs=50, horizon=12, seed=42)
    other = _runs(params, num_runs=50, horizon=12, seed=43)
    assert first == second
    assert first != other


def test_statistics_use_truncating_order_statistics() -> None:
    finals = [7.0, 3.0, 10.0, 1.0, 6.0, 2.0, 9.0, 4.0, 8.0, 5.0]
    runways = [None, 4, None, 2, 9, None, None, None, None, 6]
    runs = [_stub_run(index + 1, value, runway=runways[index]) for index, value in enumerate(finals)]
    statistics = calculate_statistics(runs)
    assert statistics.mean_final_balance == 5.5
    assert statistics.median_final_balance == 6.0
    assert statistics.percentile_5 == 1.0
    assert statistics.percentile_95 == 10.0
    assert statistics.average_runway == 5.25
    assert statistics.worst_case_runway == 2
    assert statistics.best_case_runway == 9


def test_statistics_without_runways_report_zero() -> None:
    statistics = calculate_statistics([_stub_run(1, 100.0), _stub_run(2, 200.0)])
    assert statistics.average_runway == 0.0
    assert statistics.worst_case_runway == 0
    assert statistics.best_case_runway == 0


def test_scenario_multipliers_order_inflows_and_outflows() -> None:
    params = _params()
    inflow_means = {}
    outflow_means = {}
    for scenario in ScenarioType:
        runs = _runs(params, num_runs=300, horizon=6, seed=17, scenario=scenario)
        months = [row for run in runs for row in run.monthly_results]
        inflow_means[scenario] = sum(row.inflow for row in months) / len(months)
        outflow_means[scenario] = sum(row.outflow for row in months) / len(months)

    assert (
        inflow_means[ScenarioType.optimistic]
        >= inflow_means[ScenarioType.base]
        >= inflow_means[ScenarioType.pessimistic]
        >= inflow_means[ScenarioType.stress_test]
    )
    assert (
        outflow_means[ScenarioType.stress_test]
        >= outflow_means[ScenarioType.pessimistic]
        >= outflow_means[ScenarioType.base]
        >= outflow_means[ScenarioType.optimistic]
    )


@pytest.mark.parametrize("horizon", [1, 36])
def test_horizon_sets_number_of_monthly_records(horizon: int) -> None:
    runs = _runs(_params(), num_runs=5, horizon=horizon, seed=2)
    for run in runs:
        assert len(run.monthly_results) == horizon
        assert [row.month for row in run.monthly_results] == list(range(1, horizon + 1))


def test_month_dates_follow_calendar_from_as_of() -> None:
    run = run_single_simulation(
        _params(),
        scenario=ScenarioType.base,
        time_horizon=2,
        run_number=1,
        rng=random.Random(4),
        as_of=date(2024, 1, 31),
    )
    assert [row.date for row in run.monthly_results] == ["2024-02-29", "2024-03-31"]


def test_inflows_and_outflows_are_never_negative() -> None:
    params = _params(inflow_mean=1_000.0, inflow_std=5_000.0, outflow_mean=1_000.0, outflow_std=5_000.0)
    runs = _runs(params, num_runs=50, horizon=12, seed=8)
    for run in runs:
        for row in run.monthly_results:
            assert row.inflow >= 0
            assert row.outflow >= 0
            assert row.net_flow == pytest.approx(row.inflow - row.outflow)


def test_estimate_base_parameters_from_history() -> None:
    history = [
        _flow("2024-01", "100.00", "50.00"),
        _flow("2024-02", "200.00", "50.00"),
        _flow("2024-03", "300.00", "50.00"),
    ]
    params = estimate_base_parameters(history, starting_balance=500_000.0)
    assert params.inflow_mean == pytest.approx(200.0)
    assert params.inflow_std == pytest.approx(math.sqrt(20_000.0 / 3.0))
    assert params.outflow_mean == pytest.approx(50.0)
    assert params.outflow_std == 0.0
    assert params.growth_mean == 0.05
    assert params.growth_std == 0.02
    assert params.inflow_seasonality == INFLOW_SEASONALITY
    assert params.starting_balance == 500_000.0


def test_explicit_zero_override_replaces_computed_value() -> None:
    history = [_flow("2024-01", "100.00", "80.00"), _flow("2024-02", "300.00", "20.00")]
    params = estimate_base_parameters(
        history,
        overrides={"base_inflow_std": 0.0, "growth_rate_mean": 0.0, "base_outflow_mean": None},
        starting_balance=1_000.0,
    )
    assert params.inflow_std == 0.0
    assert params.growth_mean == 0.0
    assert params.outflow_mean == pytest.approx(50.0)


def test_empty_history_requires_mean_overrides() -> None:
    with pytest.raises(HTTPException) as exc:
        estimate_base_parameters([], overrides={"base_inflow_mean": 1_000.0}, starting_balance=0.0)
    assert exc.value.status_code == 422

    params = estimate_base_parameters(
        [],
        overrides={"base_inflow_mean": 1_000.0, "base_outflow_mean": 800.0},
        starting_balance=0.0,
    )
    assert params.inflow_std == 0.0
    assert params.outflow_std == 0.0


def test_sensitivity_is_labelled_illustrative() -> None:
    assert sensitivity_analysis() == {
        "inflow_impact": 0.8,
        "outflow_impact": -0.7,
        "growth_impact": 0.9,
        "seasonality_impact": 0.3,
        "basis": "illustrative",
    }


def test_results_are_saved_in_batches() -> None:
    db = _session()
    runs = _runs(_params(), num_runs=120, horizon=3, seed=1)
    saved = save_simulation_results(
        db,
        simulation_id="sim_1_abcdef012",
        runs=runs,
        scenario=ScenarioType.base,
        time_horizon=3,
        num_runs=120,
        segment_id=None,
        batch_size=50,
    )
    assert saved == 120
    stored = list_simulation_runs(db, "sim_1_abcdef012", limit=500)
    assert [row.run_number for row in stored] == list(range(1, 121))
    assert len(stored[0].monthly_results) == 3
    assert stored[0].final_balance == money(runs[0].final_balance)


class _FailingCommitSession:
    def __init__(self, db: Session, *, fail_on: int) -> None:
        self.db = db
        self.fail_on = fail_on
        self.commits = 0
        self.rollbacks = 0

    def add_all(self, rows) -> None:
        self.db.add_all(rows)

    def commit(self) -> None:
        self.commits += 1
        if self.commits == self.fail_on:
            raise SQLAlchemyError("disk full")
        self.db.commit()

    def rollback(self) -> None:
        self.rollbacks += 1
        self.db.rollback()


def test_failing_batch_rolls_back_and_aborts_remaining_batches() -> None:
    db = _session()
    flaky = _FailingCommitSession(db, fail_on=2)
    runs = _runs(_params(), num_runs=150, horizon=2, seed=6)
    with pytest.raises(SQLAlchemyError):
        save_simulation_results(
            flaky,
            simulation_id="sim_2_abcdef012",
            runs=runs,
            scenario=ScenarioType.base,
            time_horizon=2,
            num_runs=150,
            segment_id=None,
            batch_size=50,
        )
    assert flaky.commits == 2
    assert flaky.rollbacks == 1
    assert db.scalar(select(func.count(SimulationResult.id))) == 50


def test_run_simulation_end_to_end_smoke() -> None:
    db = _session()
    segment = _seed_history(db, inflow="500000.00", outflow="400000.00")

    outcome = run_simulation(
        db,
        num_runs=500,
        time_horizon=12,
        scenario=ScenarioType("BASE"),
        segment_id=segment.id,
        seed=7,
        as_of=AS_OF,
    )

    assert re.fullmatch(r"sim_\d+_[0-9a-f]{9}", outcome.simulation_id)
    assert len(outcome.runs) == 500
    assert outcome.parameters["base_parameters"]["history_months"] == 24
    assert outcome.parameters["base_parameters"]["inflow_mean"] == pytest.approx(500_000.0)
    assert outcome.statistics.mean_final_balance > 0
    assert outcome.statistics.probability_negative < 0.5
    assert outcome.sensitivity_analysis["basis"] == "illustrative"
    assert db.scalar(
        select(func.count(SimulationResult.id)).where(SimulationResult.simulation_id == outcome.simulation_id)
    ) == 500


def test_run_simulation_without_history_or_overrides_fails_fast() -> None:
    db = _session()
    with pytest.raises(HTTPException) as exc:
        run_simulation(db, num_runs=100, time_horizon=6, as_of=AS_OF)
    assert exc.value.status_code == 422
    assert db.scalar(select(func.count(SimulationResult.id))) == 0


def test_unknown_simulation_id_is_not_found() -> None:
    db = _session()
    with pytest.raises(HTTPException) as exc:
        list_simulation_runs(db, "sim_0_missing00")
    assert exc.value.status_code == 404


def test_recent_simulations_report_averages() -> None:
    db = _session()
    runs = [
        _stub_run(1, 100.0, min_balance=-5.0, runway=2),
        _stub_run(2, 300.0, runway=None),
    ]
    save_simulation_results(
        db,
        simulation_id="sim_3_abcdef012",
        runs=runs,
        scenario=ScenarioType.stress_test,
        time_horizon=6,
        num_runs=2,
        segment_id=None,
        batch_size=50,
    )
    rows = recent_simulations(db)
    assert len(rows) == 1
    row = rows[0]
    assert row["simulation_id"] == "sim_3_abcdef012"
    assert row["scenario"] == ScenarioType.stress_test
    assert row["avg_final_balance"] == pytest.approx(200.0)
    assert row["avg_probability_negative"] == pytest.approx(0.5)
    assert row["avg_runway"] == pytest.approx(2.0)
