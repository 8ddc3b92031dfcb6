from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.enums import TransactionType
from app.models.transaction import CashTransaction
from app.utils.dates import add_months, month_key, month_start
from app.utils.decimal_math import money


@dataclass(frozen=True)
class MonthlyFlow:
    month_key: str
    month_start: date
    inflow: Decimal
    outflow: Decimal

    @property
    def net_flow(self) -> Decimal:
        return money(self.inflow - self.outflow)


def fetch_transactions(
    db: Session,
    *,
    start: date,
    end: date,
    segment_id: int | None = None,
) -> list[CashTransaction]:
    query = select(CashTransaction).where(
        CashTransaction.tx_date >= start,
        CashTransaction.tx_date <= end,
    )
    if segment_id is not None:
        query = query.where(CashTransaction.segment_id == segment_id)
    return list(db.scalars(query.order_by(CashTransaction.tx_date.asc(), CashTransaction.id.asc())).all())


def monthly_flows(transactions: Iterable[CashTransaction]) -> list[MonthlyFlow]:
    buckets: dict[str, dict[str, Decimal | date]] = {}
    for tx in transactions:
        key = month_key(tx.tx_date)
        bucket = buckets.setdefault(
            key,
            {"month_start": month_start(tx.tx_date), "inflow": money(0), "outflow": money(0)},
        )
        field = "inflow" if tx.direction == TransactionType.inflow else "outflow"
        bucket[field] = money(bucket[field] + money(tx.amount))

    return [
        MonthlyFlow(
            month_key=key,
            month_start=bucket["month_start"],
            inflow=bucket["inflow"],
            outflow=bucket["outflow"],
        )
        for key, bucket in sorted(buckets.items())
    ]


def load_monthly_history(
    db: Session,
    *,
    segment_id: int | None = None,
    months: int = 24,
    as_of: date | None = None,
) -> list[MonthlyFlow]:
    end = as_of or date.today()
    start = add_months(end, -months)
    return monthly_flows(fetch_transactions(db, start=start, end=end, segment_id=segment_id))
