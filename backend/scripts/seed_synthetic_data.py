from __future__ import annotations

import random
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from app.db.session import SessionLocal
from app.models.segment import BusinessSegment
from app.services.cashflow_analytics import compute_kpi_snapshot
from app.services.risk_alerts import evaluate_risk_alerts
from app.services.seed import ensure_segment_history

SYNTHETIC_MONTHS = 36

SYNTHETIC_SEGMENTS = (
    ("Enterprise", "Multi-year enterprise agreements", Decimal("900000.00")),
    ("Online", "Self-serve subscriptions", Decimal("150000.00")),
    ("Field Operations", "Regional on-site work", Decimal("260000.00")),
)


def _ensure_segment(db, *, name: str, description: str) -> BusinessSegment:
    segment = db.scalar(select(BusinessSegment).where(BusinessSegment.name == name))
    if segment is not None:
        return segment
    segment = BusinessSegment(name=name, description=description, is_active=True)
    db.add(segment)
    db.flush()
    return segment


def main() -> None:
    as_of = date.today()
    rng = random.Random(7)
    with SessionLocal() as db:
        written = 0
        for name, description, base_inflow in SYNTHETIC_SEGMENTS:
            segment = _ensure_segment(db, name=name, description=description)
            written += ensure_segment_history(
                db,
                segment,
                months=SYNTHETIC_MONTHS,
                as_of=as_of,
                base_inflow=base_inflow,
                rng=rng,
            )
            compute_kpi_snapshot(db, segment_id=segment.id, as_of=as_of)
            evaluate_risk_alerts(db, segment_id=segment.id, as_of=as_of)
        compute_kpi_snapshot(db, as_of=as_of)
        db.commit()
        print(f"Synthetic data seeded successfully ({written} transactions).")


if __name__ == "__main__":
    main()
