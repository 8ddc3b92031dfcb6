from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.models.enums import TransactionType
from app.models.kpi import KPISnapshot
from app.models.segment import BusinessSegment
from app.models.transaction import CashTransaction
from app.services.cashflow_analytics import (
    aging_analysis,
    cashflow_overview,
    cashflow_summary,
    compute_kpi_snapshot,
    kpi_overview,
    liquidity_position,
    segment_performance,
)
from app.services.history import fetch_transactions, load_monthly_history, monthly_flows


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _segment(db: Session, name: str = "Retail", *, is_active: bool = True) -> BusinessSegment:
    segment = BusinessSegment(name=name, description=f"{name} segment", is_active=is_active)
    db.add(segment)
    db.flush()
    return segment


def _tx(
    db: Session,
    segment: BusinessSegment,
    when: date,
    amount: str,
    direction: TransactionType,
    *,
    is_paid: bool = True,
    aging_days: int | None = None,
) -> None:
    db.add(
        CashTransaction(
            segment_id=segment.id,
            tx_date=when,
            amount=Decimal(amount),
            direction=direction,
            category="general",
            is_paid=is_paid,
            aging_days=aging_days,
        )
    )


def _burning_history(db: Session) -> BusinessSegment:
    segment = _segment(db)
    for month in range(1, 5):
        _tx(db, segment, date(2024, month, 10), "1000.00", TransactionType.inflow)
        _tx(db, segment, date(2024, month, 10), "1500.00", TransactionType.outflow)
    _tx(db, segment, date(2024, 4, 20), "2000.00", TransactionType.outflow, is_paid=False)
    _tx(db, segment, date(2024, 4, 21), "500.00", TransactionType.inflow, is_paid=False, aging_days=9)
    db.commit()
    return segment


def test_monthly_flows_bucket_by_calendar_month() -> None:
    db = _session()
    _burning_history(db)
    flows = monthly_flows(fetch_transactions(db, start=date(2024, 1, 1), end=date(2024, 4, 30)))
    assert [row.month_key for row in flows] == ["2024-01", "2024-02", "2024-03", "2024-04"]
    assert flows[-1].inflow == Decimal("1500.00")
    assert flows[-1].outflow == Decimal("3500.00")
    assert flows[-1].net_flow == Decimal("-2000.00")
    assert flows[0].month_start == date(2024, 1, 1)


def test_history_window_is_inclusive_of_as_of() -> None:
    db = _session()
    _burning_history(db)
    flows = load_monthly_history(db, months=2, as_of=date(2024, 4, 10))
    assert [row.month_key for row in flows] == ["2024-02", "2024-03", "2024-04"]
    assert flows[-1].outflow == Decimal("1500.00")


def test_cashflow_summary_totals_window() -> None:
    db = _session()
    segment = _burning_history(db)
    summary = cashflow_summary(db, start=date(2024, 2, 1), end=date(2024, 3, 31), segment_id=segment.id)
    assert summary["total_inflow"] == Decimal("2000.00")
    assert summary["total_outflow"] == Decimal("3000.00")
    assert summary["net_cash_flow"] == Decimal("-1000.00")
    assert summary["transaction_count"] == 4
    assert summary["period"] == "2024-02-01 to 2024-03-31"


def test_compute_kpi_snapshot_from_history() -> None:
    db = _session()
    _burning_history(db)
    snapshot = compute_kpi_snapshot(db, as_of=date(2024, 4, 30))
    db.commit()

    assert snapshot.id is not None
    assert snapshot.segment_id is None
    assert snapshot.total_inflow == Decimal("1500.00")
    assert snapshot.total_outflow == Decimal("3500.00")
    assert snapshot.net_cash_flow == Decimal("-2000.00")
    assert snapshot.burn_rate == Decimal("1000.00")
    assert snapshot.cash_balance == Decimal("496500.00")
    assert snapshot.runway_months == 496
    assert snapshot.working_capital_ratio == pytest.approx(248.5)
    assert snapshot.monthly_growth_rate == pytest.approx(0.5)


def test_compute_kpi_snapshot_without_transactions_is_rejected() -> None:
    db = _session()
    with pytest.raises(HTTPException) as exc:
        compute_kpi_snapshot(db, as_of=date(2024, 4, 30))
    assert exc.value.status_code == 422


def test_liquidity_position_without_burn_has_no_runway() -> None:
    db = _session()
    segment = _segment(db)
    _tx(db, segment, date(2024, 1, 5), "900.00", TransactionType.inflow)
    _tx(db, segment, date(2024, 1, 6), "400.00", TransactionType.outflow)
    db.commit()
    flows = load_monthly_history(db, as_of=date(2024, 1, 31))
    position = liquidity_position(flows, starting_balance=1000.0)
    assert position.cash_balance == Decimal("1500.00")
    assert position.burn_rate == Decimal("0.00")
    assert position.runway_months is None


def test_liquidity_position_runway_never_negative() -> None:
    db = _session()
    segment = _segment(db)
    _tx(db, segment, date(2024, 1, 5), "5000.00", TransactionType.outflow)
    db.commit()
    flows = load_monthly_history(db, as_of=date(2024, 1, 31))
    position = liquidity_position(flows, starting_balance=1000.0)
    assert position.cash_balance == Decimal("-4000.00")
    assert position.burn_rate == Decimal("5000.00")
    assert position.runway_months == 0


@pytest.mark.parametrize(
    ("aging_days", "bucket"),
    [
        (None, "current"),
        (30, "current"),
        (31, "days_31_60"),
        (60, "days_31_60"),
        (61, "days_61_90"),
        (90, "days_61_90"),
        (91, "over_90"),
    ],
)
def test_aging_bucket_boundaries(aging_days: int | None, bucket: str) -> None:
    db = _session()
    segment = _segment(db)
    _tx(db, segment, date(2024, 1, 1), "250.00", TransactionType.inflow, is_paid=False, aging_days=aging_days)
    db.commit()
    result = aging_analysis(db)
    assert result["buckets"][bucket] == Decimal("250.00")
    assert sum(result["buckets"].values()) == Decimal("250.00")


def test_aging_ignores_paid_inflows_and_payables() -> None:
    db = _session()
    segment = _segment(db)
    _tx(db, segment, date(2024, 1, 1), "100.00", TransactionType.inflow, is_paid=False, aging_days=10)
    _tx(db, segment, date(2024, 1, 1), "300.00", TransactionType.inflow, is_paid=False, aging_days=100)
    _tx(db, segment, date(2024, 1, 1), "700.00", TransactionType.inflow, is_paid=True, aging_days=200)
    _tx(db, segment, date(2024, 1, 1), "900.00", TransactionType.outflow, is_paid=False, aging_days=200)
    db.commit()
    result = aging_analysis(db, segment_id=segment.id)
    assert result["total_outstanding"] == Decimal("400.00")
    assert result["receivable_count"] == 2
    assert result["average_aging_days"] == 55.0
    assert result["buckets"]["over_90"] == Decimal("300.00")


def test_segment_performance_lists_active_segments() -> None:
    db = _session()
    retail = _segment(db, "Retail")
    online = _segment(db, "Online")
    _segment(db, "Closed", is_active=False)
    _tx(db, retail, date(2024, 1, 10), "1000.00", TransactionType.inflow)
    _tx(db, retail, date(2024, 2, 10), "1200.00", TransactionType.inflow)
    _tx(db, retail, date(2024, 2, 11), "300.00", TransactionType.outflow)
    _tx(db, online, date(2024, 2, 12), "50.00", TransactionType.inflow)
    db.commit()

    rows = segment_performance(db, start=date(2024, 1, 1), end=date(2024, 2, 29))
    assert [row["segment_name"] for row in rows] == ["Online", "Retail"]
    online_row, retail_row = rows
    assert online_row["growth_rate"] is None
    assert online_row["transaction_count"] == 1
    assert retail_row["net_cash_flow"] == Decimal("1900.00")
    assert retail_row["growth_rate"] == pytest.approx(0.2)


def test_cashflow_overview_rejects_inverted_range() -> None:
    db = _session()
    with pytest.raises(HTTPException) as exc:
        cashflow_overview(db, start=date(2024, 5, 1), end=date(2024, 4, 1))
    assert exc.value.status_code == 400


def test_cashflow_overview_scoped_to_segment() -> None:
    db = _session()
    segment = _burning_history(db)
    overview = cashflow_overview(db, months=6, segment_id=segment.id, end=date(2024, 4, 30))
    assert overview.segment_performance == []
    assert len(overview.monthly_trend) == 4
    assert overview.monthly_trend[0]["month"] == "2024-01"
    assert overview.aging_analysis["total_outstanding"] == Decimal("500.00")


def _snapshot(db: Session, when: date, *, net: str, burn: str, inflow: str, segment_id: int | None = None) -> None:
    db.add(
        KPISnapshot(
            segment_id=segment_id,
            snapshot_date=when,
            total_inflow=Decimal(inflow),
            total_outflow=Decimal("0.00"),
            net_cash_flow=Decimal(net),
            burn_rate=Decimal(burn),
            cash_balance=Decimal("10000.00"),
            runway_months=None,
            working_capital_ratio=None,
            monthly_growth_rate=None,
        )
    )


def test_kpi_overview_reports_trend_and_changes() -> None:
    db = _session()
    segment = _segment(db)
    _snapshot(db, date(2024, 1, 31), net="-2000.00", burn="800.00", inflow="100.00")
    _snapshot(db, date(2024, 2, 29), net="-1000.00", burn="1000.00", inflow="0.00")
    _snapshot(db, date(2024, 3, 31), net="-500.00", burn="1500.00", inflow="400.00")
    _snapshot(db, date(2024, 4, 30), net="99.00", burn="1.00", inflow="1.00", segment_id=segment.id)
    db.commit()

    overview = kpi_overview(db)
    assert [row.snapshot_date for row in overview["trends"]] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
    ]
    assert overview["current"].snapshot_date == date(2024, 3, 31)
    assert overview["changes"] == {
        "net_cash_flow_change": pytest.approx(50.0),
        "burn_rate_change": pytest.approx(50.0),
        "inflow_change": None,
    }


def test_kpi_overview_single_snapshot_has_no_changes() -> None:
    db = _session()
    _snapshot(db, date(2024, 1, 31), net="10.00", burn="0.00", inflow="10.00")
    db.commit()
    assert kpi_overview(db)["changes"] is None


def test_kpi_overview_without_snapshots_is_not_found() -> None:
    db = _session()
    with pytest.raises(HTTPException) as exc:
        kpi_overview(db)
    assert exc.value.status_code == 404
