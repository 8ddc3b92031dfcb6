from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.enums import TransactionType
from app.models.kpi import KPISnapshot
from app.models.segment import BusinessSegment
from app.models.transaction import CashTransaction
from app.services.history import MonthlyFlow, fetch_transactions, load_monthly_history, monthly_flows
from app.utils.dates import add_months
from app.utils.decimal_math import money, money_sum, ratio


logger = logging.getLogger(__name__)

AGING_BUCKETS = (
    ("current", 30),
    ("days_31_60", 60),
    ("days_61_90", 90),
)
OVERDUE_BUCKET = "over_90"
BURN_WINDOW_MONTHS = 3


@dataclass(frozen=True)
class CashFlowOverview:
    summary: dict[str, Any]
    monthly_trend: list[dict[str, Any]]
    segment_performance: list[dict[str, Any]]
    aging_analysis: dict[str, Any]


@dataclass(frozen=True)
class LiquidityPosition:
    cash_balance: Decimal
    burn_rate: Decimal
    runway_months: int | None


def _split_totals(transactions: list[CashTransaction]) -> tuple[Decimal, Decimal]:
    inflow = money(0)
    outflow = money(0)
    for tx in transactions:
        if tx.direction == TransactionType.inflow:
            inflow = money(inflow + money(tx.amount))
        else:
            outflow = money(outflow + money(tx.amount))
    return inflow, outflow


def _growth_rate(flows: list[MonthlyFlow]) -> float | None:
    if len(flows) < 2:
        return None
    previous = flows[-2].inflow
    rate = ratio(flows[-1].inflow - previous, previous)
    return float(rate) if rate is not None else None


def _change_pct(current: Decimal | float, previous: Decimal | float) -> float | None:
    previous = Decimal(str(previous))
    change = ratio((Decimal(str(current)) - previous) * Decimal("100"), abs(previous))
    return float(change) if change is not None else None


def cashflow_summary(
    db: Session,
    *,
    start: date,
    end: date,
    segment_id: int | None = None,
) -> dict[str, Any]:
    transactions = fetch_transactions(db, start=start, end=end, segment_id=segment_id)
    inflow, outflow = _split_totals(transactions)
    return {
        "total_inflow": inflow,
        "total_outflow": outflow,
        "net_cash_flow": money(inflow - outflow),
        "transaction_count": len(transactions),
        "period": f"{start.isoformat()} to {end.isoformat()}",
    }


def monthly_trend(
    db: Session,
    *,
    months: int = 12,
    segment_id: int | None = None,
    as_of: date | None = None,
) -> list[dict[str, Any]]:
    flows = load_monthly_history(db, segment_id=segment_id, months=months, as_of=as_of)
    return [
        {
            "month": row.month_key,
            "date": row.month_start,
            "inflow": row.inflow,
            "outflow": row.outflow,
            "net_flow": row.net_flow,
        }
        for row in flows
    ]


def segment_performance(db: Session, *, start: date, end: date) -> list[dict[str, Any]]:
    segments = list(
        db.scalars(
            select(BusinessSegment)
            .where(BusinessSegment.is_active.is_(True))
            .order_by(BusinessSegment.name.asc())
        ).all()
    )
    by_segment: dict[int, list[CashTransaction]] = defaultdict(list)
    for tx in fetch_transactions(db, start=start, end=end):
        by_segment[tx.segment_id].append(tx)

    rows: list[dict[str, Any]] = []
    for segment in segments:
        transactions = by_segment.get(segment.id, [])
        inflow, outflow = _split_totals(transactions)
        rows.append(
            {
                "segment_id": segment.id,
                "segment_name": segment.name,
                "total_inflow": inflow,
                "total_outflow": outflow,
                "net_cash_flow": money(inflow - outflow),
                "growth_rate": _growth_rate(monthly_flows(transactions)),
                "transaction_count": len(transactions),
            }
        )
    return rows


def aging_analysis(db: Session, *, segment_id: int | None = None) -> dict[str, Any]:
    """Open receivables (unpaid inflows) split into 30-day aging buckets."""
    query = select(CashTransaction).where(
        CashTransaction.direction == TransactionType.inflow,
        CashTransaction.is_paid.is_(False),
    )
    if segment_id is not None:
        query = query.where(CashTransaction.segment_id == segment_id)
    receivables = list(db.scalars(query).all())

    buckets = {name: money(0) for name, _ in AGING_BUCKETS}
    buckets[OVERDUE_BUCKET] = money(0)
    total = money(0)
    aging_sum = 0
    for row in receivables:
        amount = money(row.amount)
        aging = row.aging_days or 0
        total = money(total + amount)
        aging_sum += aging
        bucket = next((name for name, limit in AGING_BUCKETS if aging <= limit), OVERDUE_BUCKET)
        buckets[bucket] = money(buckets[bucket] + amount)

    return {
        "buckets": buckets,
        "total_outstanding": total,
        "average_aging_days": aging_sum / len(receivables) if receivables else 0.0,
        "receivable_count": len(receivables),
    }


def cashflow_overview(
    db: Session,
    *,
    months: int = 12,
    segment_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
) -> CashFlowOverview:
    end = end or date.today()
    start = start or add_months(end, -months)
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must be on or before end_date.",
        )
    return CashFlowOverview(
        summary=cashflow_summary(db, start=start, end=end, segment_id=segment_id),
        monthly_trend=monthly_trend(db, months=months, segment_id=segment_id, as_of=end),
        segment_performance=[] if segment_id is not None else segment_performance(db, start=start, end=end),
        aging_analysis=aging_analysis(db, segment_id=segment_id),
    )


def _open_balances(db: Session, *, segment_id: int | None) -> tuple[Decimal, Decimal]:
    query = select(CashTransaction).where(CashTransaction.is_paid.is_(False))
    if segment_id is not None:
        query = query.where(CashTransaction.segment_id == segment_id)
    receivables, payables = _split_totals(list(db.scalars(query).all()))
    return receivables, payables


def liquidity_position(flows: list[MonthlyFlow], *, starting_balance: float) -> LiquidityPosition:
    """Cash balance, burn rate and runway implied by a monthly history.

    Burn rate averages net outflow over the trailing three months and never
    goes negative; runway is only defined while burning.
    """
    cash_balance = money(Decimal(str(starting_balance)) + money_sum(row.net_flow for row in flows))
    recent = flows[-BURN_WINDOW_MONTHS:]
    burn_rate = money(0)
    if recent:
        net_outflow = money_sum(row.outflow - row.inflow for row in recent) / Decimal(len(recent))
        burn_rate = money(max(Decimal("0"), net_outflow))

    runway_months: int | None = None
    if burn_rate > 0:
        runway_months = max(0, int((cash_balance / burn_rate).to_integral_value(rounding=ROUND_FLOOR)))
    return LiquidityPosition(cash_balance=cash_balance, burn_rate=burn_rate, runway_months=runway_months)


def compute_kpi_snapshot(
    db: Session,
    *,
    segment_id: int | None = None,
    as_of: date | None = None,
) -> KPISnapshot:
    settings = get_settings()
    as_of = as_of or date.today()
    flows = load_monthly_history(db, segment_id=segment_id, months=settings.history_months, as_of=as_of)
    if not flows:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No transactions available to compute KPIs.",
        )

    latest = flows[-1]
    position = liquidity_position(flows, starting_balance=settings.simulation_starting_balance)
    receivables, payables = _open_balances(db, segment_id=segment_id)
    coverage = ratio(position.cash_balance + receivables, payables)
    working_capital_ratio = float(coverage) if coverage is not None else None

    snapshot = KPISnapshot(
        segment_id=segment_id,
        snapshot_date=as_of,
        total_inflow=latest.inflow,
        total_outflow=latest.outflow,
        net_cash_flow=latest.net_flow,
        burn_rate=position.burn_rate,
        cash_balance=position.cash_balance,
        runway_months=position.runway_months,
        working_capital_ratio=working_capital_ratio,
        monthly_growth_rate=_growth_rate(flows),
    )
    db.add(snapshot)
    db.flush()
    logger.info(
        "KPI snapshot %s staged for segment %s: balance=%s burn=%s runway=%s",
        snapshot.id,
        segment_id,
        position.cash_balance,
        position.burn_rate,
        position.runway_months,
    )
    return snapshot


def _snapshot_scope(query, segment_id: int | None):
    if segment_id is None:
        return query.where(KPISnapshot.segment_id.is_(None))
    return query.where(KPISnapshot.segment_id == segment_id)


def kpi_overview(db: Session, *, segment_id: int | None = None, trend_points: int = 12) -> dict[str, Any]:
    history = list(
        db.scalars(
            _snapshot_scope(select(KPISnapshot), segment_id)
            .order_by(KPISnapshot.snapshot_date.desc(), KPISnapshot.id.desc())
            .limit(trend_points)
        ).all()
    )
    if not history:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No KPI data found.")

    history.reverse()
    current = history[-1]
    changes = None
    if len(history) >= 2:
        previous = history[-2]
        changes = {
            "net_cash_flow_change": _change_pct(current.net_cash_flow, previous.net_cash_flow),
            "burn_rate_change": _change_pct(current.burn_rate, previous.burn_rate),
            "inflow_change": _change_pct(current.total_inflow, previous.total_inflow),
        }
    return {"current": current, "trends": history, "changes": changes}
