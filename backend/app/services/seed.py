from __future__ import annotations

import random
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.enums import (
    RecommendationCategory,
    RecommendationPriority,
    RecommendationStatus,
    TransactionType,
)
from app.models.kpi import KPISnapshot
from app.models.recommendation import BusinessRecommendation
from app.models.segment import BusinessSegment
from app.models.transaction import CashTransaction
from app.services.cashflow_analytics import compute_kpi_snapshot
from app.services.monte_carlo import INFLOW_SEASONALITY, OUTFLOW_SEASONALITY
from app.services.risk_alerts import evaluate_risk_alerts
from app.utils.dates import add_months, month_start
from app.utils.decimal_math import money

DEMO_HISTORY_MONTHS = 24
KPI_TREND_MONTHS = 6

DEMO_SEGMENTS = (
    ("Retail", "Store and e-commerce sales", Decimal("1.00")),
    ("Wholesale", "Distributor and bulk accounts", Decimal("0.65")),
    ("Services", "Installation and maintenance contracts", Decimal("0.35")),
)

# (category, description, direction, share of the segment's base inflow)
MONTHLY_LINES = (
    ("sales", "Customer receipts", TransactionType.inflow, Decimal("0.80")),
    ("contracts", "Contract billing", TransactionType.inflow, Decimal("0.20")),
    ("payroll", "Payroll run", TransactionType.outflow, Decimal("0.38")),
    ("suppliers", "Supplier payments", TransactionType.outflow, Decimal("0.30")),
    ("opex", "Rent and operating costs", TransactionType.outflow, Decimal("0.12")),
)

DEMO_RECOMMENDATIONS = (
    {
        "category": RecommendationCategory.collection_strategy,
        "priority": RecommendationPriority.high,
        "title": "Automate reminders for invoices past 60 days",
        "description": "Scheduled reminders and early-payment discounts on aged receivables.",
        "estimated_impact": Decimal("85000.00"),
        "implementation_cost": Decimal("6000.00"),
        "time_to_implement": "2-4 weeks",
        "confidence": 0.78,
    },
    {
        "category": RecommendationCategory.credit_line,
        "priority": RecommendationPriority.medium,
        "title": "Arrange a revolving credit facility",
        "description": "A committed facility covering three months of payroll smooths seasonal troughs.",
        "estimated_impact": Decimal("250000.00"),
        "implementation_cost": Decimal("4500.00"),
        "time_to_implement": "1-2 months",
        "confidence": 0.65,
    },
    {
        "category": RecommendationCategory.payment_terms,
        "priority": RecommendationPriority.medium,
        "title": "Negotiate 45-day terms with top suppliers",
        "description": "Aligning supplier terms with customer collection cycles frees working capital.",
        "estimated_impact": Decimal("120000.00"),
        "implementation_cost": None,
        "time_to_implement": "1 month",
        "confidence": 0.7,
    },
    {
        "category": RecommendationCategory.cost_optimization,
        "priority": RecommendationPriority.low,
        "title": "Consolidate software subscriptions",
        "description": "Overlapping tools across segments can be merged into a single contract.",
        "estimated_impact": Decimal("18000.00"),
        "implementation_cost": Decimal("2000.00"),
        "time_to_implement": "2 weeks",
        "confidence": 0.85,
    },
)


def _get_or_create_segment(db: Session, *, name: str, description: str) -> BusinessSegment:
    segment = db.scalar(select(BusinessSegment).where(BusinessSegment.name == name))
    if segment is not None:
        return segment

    segment = BusinessSegment(name=name, description=description, is_active=True)
    db.add(segment)
    db.flush()
    return segment


def _has_transactions(db: Session, segment_id: int) -> bool:
    return db.scalar(
        select(CashTransaction.id).where(CashTransaction.segment_id == segment_id).limit(1)
    ) is not None


def ensure_segment_history(
    db: Session,
    segment: BusinessSegment,
    *,
    months: int,
    as_of: date,
    base_inflow: Decimal,
    rng: random.Random,
) -> int:
    """Write monthly transaction lines for a segment that has none yet."""
    if _has_transactions(db, segment.id):
        return 0

    first = add_months(month_start(as_of), -(months - 1))
    created = 0
    for offset in range(months):
        period_start = add_months(first, offset)
        trend = Decimal("1") + Decimal("0.01") * offset
        for index, (category, description, direction, share) in enumerate(MONTHLY_LINES):
            table = INFLOW_SEASONALITY if direction == TransactionType.inflow else OUTFLOW_SEASONALITY
            seasonal = Decimal(str(table[period_start.month - 1]))
            jitter = Decimal(str(round(rng.uniform(0.9, 1.1), 4)))
            tx_date = period_start.replace(day=min(5 + index * 5, 28))
            if tx_date > as_of:
                continue
            db.add(
                CashTransaction(
                    segment_id=segment.id,
                    tx_date=tx_date,
                    amount=money(base_inflow * share * trend * seasonal * jitter),
                    direction=direction,
                    category=category,
                    description=f"{description} {period_start:%b %Y}",
                    is_paid=True,
                )
            )
            created += 1

    # open receivables spread across the aging buckets
    for aging_days in (12, 45, 75, 120):
        issued = date.fromordinal(as_of.toordinal() - aging_days)
        db.add(
            CashTransaction(
                segment_id=segment.id,
                tx_date=issued,
                amount=money(base_inflow * Decimal("0.05")),
                direction=TransactionType.inflow,
                category="invoice",
                description=f"Open invoice ({aging_days} days)",
                is_paid=False,
                due_date=date.fromordinal(issued.toordinal() + 30),
                aging_days=aging_days,
            )
        )
        created += 1
    db.flush()
    return created


def _ensure_kpi_trend(db: Session, *, as_of: date) -> None:
    for offset in range(KPI_TREND_MONTHS - 1, -1, -1):
        snapshot_date = add_months(as_of, -offset)
        exists = db.scalar(
            select(KPISnapshot.id).where(
                KPISnapshot.segment_id.is_(None),
                KPISnapshot.snapshot_date == snapshot_date,
            )
        )
        if exists is None:
            compute_kpi_snapshot(db, as_of=snapshot_date)


def _ensure_recommendations(db: Session, *, segment_id: int | None) -> None:
    for payload in DEMO_RECOMMENDATIONS:
        exists = db.scalar(
            select(BusinessRecommendation.id).where(BusinessRecommendation.title == payload["title"])
        )
        if exists is not None:
            continue
        db.add(
            BusinessRecommendation(
                segment_id=segment_id,
                status=RecommendationStatus.pending,
                based_on_data={"source": "demo"},
                **payload,
            )
        )
    db.flush()


def seed_demo_data(db: Session, *, as_of: date | None = None) -> None:
    as_of = as_of or date.today()
    rng = random.Random(20240101)
    base_inflow = Decimal("500000.00")

    for name, description, scale in DEMO_SEGMENTS:
        segment = _get_or_create_segment(db, name=name, description=description)
        ensure_segment_history(
            db,
            segment,
            months=DEMO_HISTORY_MONTHS,
            as_of=as_of,
            base_inflow=base_inflow * scale,
            rng=rng,
        )

    _ensure_kpi_trend(db, as_of=as_of)
    _ensure_recommendations(db, segment_id=None)
    evaluate_risk_alerts(db, as_of=as_of)
    db.commit()
