from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.alert import RiskAlert
from app.models.enums import AlertSeverity, AlertType
from app.services.cashflow_analytics import aging_analysis, liquidity_position
from app.services.history import MonthlyFlow, load_monthly_history
from app.utils.decimal_math import money, money_sum, pct


logger = logging.getLogger(__name__)

SEVERITY_WEIGHT = {
    AlertSeverity.low: 1,
    AlertSeverity.medium: 2,
    AlertSeverity.high: 3,
    AlertSeverity.critical: 4,
}

RUNWAY_WARNING_MONTHS = 6
RUNWAY_CRITICAL_MONTHS = 3
SPIKE_RATIO = Decimal("1.25")
SPIKE_SEVERE_RATIO = Decimal("1.50")
AGING_SHARE_LIMIT = Decimal("0.20")
AGING_SEVERE_SHARE = Decimal("0.40")
TREND_DAYS = 30


def _runway_rule(flows: list[MonthlyFlow], starting_balance: float) -> dict[str, Any] | None:
    position = liquidity_position(flows, starting_balance=starting_balance)
    runway = position.runway_months
    if runway is None or runway >= RUNWAY_WARNING_MONTHS:
        return None
    severity = AlertSeverity.critical if runway < RUNWAY_CRITICAL_MONTHS else AlertSeverity.high
    return {
        "alert_type": AlertType.runway_warning,
        "severity": severity,
        "title": f"Cash runway below {RUNWAY_WARNING_MONTHS} months",
        "description": (
            f"At the current burn rate of {position.burn_rate:,.2f} per month the cash balance of "
            f"{position.cash_balance:,.2f} lasts about {runway} months."
        ),
        "affected_amount": position.burn_rate,
        "recommendations": [
            "Review discretionary spending for the next quarter.",
            "Evaluate a committed credit line as a liquidity buffer.",
        ],
        "triggered_by": {
            "runway_months": runway,
            "burn_rate": str(position.burn_rate),
            "cash_balance": str(position.cash_balance),
        },
    }


def _liquidity_rule(flows: list[MonthlyFlow], starting_balance: float) -> dict[str, Any] | None:
    latest = flows[-1]
    if latest.net_flow >= 0:
        return None
    position = liquidity_position(flows, starting_balance=starting_balance)
    severity = AlertSeverity.high if position.cash_balance <= abs(latest.net_flow) else AlertSeverity.medium
    return {
        "alert_type": AlertType.liquidity_risk,
        "severity": severity,
        "title": "Negative net cash flow",
        "description": (
            f"Outflows exceeded inflows by {abs(latest.net_flow):,.2f} in {latest.month_key}."
        ),
        "affected_amount": abs(latest.net_flow),
        "recommendations": [
            "Accelerate collection of open receivables.",
            "Defer non-critical payments where terms allow.",
        ],
        "triggered_by": {
            "month": latest.month_key,
            "net_flow": str(latest.net_flow),
            "cash_balance": str(position.cash_balance),
        },
    }


def _outflow_spike_rule(flows: list[MonthlyFlow]) -> dict[str, Any] | None:
    if len(flows) < 4:
        return None
    latest = flows[-1]
    trailing = flows[-4:-1]
    baseline = money_sum(row.outflow for row in trailing) / Decimal(len(trailing))
    if baseline <= 0 or latest.outflow < money(baseline * SPIKE_RATIO):
        return None
    ratio = latest.outflow / baseline
    severity = AlertSeverity.high if ratio >= SPIKE_SEVERE_RATIO else AlertSeverity.medium
    return {
        "alert_type": AlertType.outflow_spike,
        "severity": severity,
        "title": "Outflow spike detected",
        "description": (
            f"Outflows of {latest.outflow:,.2f} in {latest.month_key} are {ratio:.0%} of the "
            f"trailing three-month average ({money(baseline):,.2f})."
        ),
        "affected_amount": money(latest.outflow - baseline),
        "recommendations": ["Review the largest payments booked this month."],
        "triggered_by": {
            "month": latest.month_key,
            "outflow": str(latest.outflow),
            "trailing_average": str(money(baseline)),
            "ratio": str(pct(ratio)),
        },
    }


def _aging_rule(aging: dict[str, Any]) -> dict[str, Any] | None:
    total = aging["total_outstanding"]
    if total <= 0:
        return None
    overdue = aging["buckets"]["over_90"]
    share = overdue / total
    if share <= AGING_SHARE_LIMIT:
        return None
    severity = AlertSeverity.high if share > AGING_SEVERE_SHARE else AlertSeverity.medium
    return {
        "alert_type": AlertType.receivable_aging,
        "severity": severity,
        "title": "Receivables aging beyond 90 days",
        "description": f"{share:.0%} of open receivables ({overdue:,.2f}) are more than 90 days old.",
        "affected_amount": overdue,
        "recommendations": [
            "Escalate collection on accounts older than 90 days.",
            "Tighten payment terms for repeat late payers.",
        ],
        "triggered_by": {
            "over_90": str(overdue),
            "total_outstanding": str(total),
            "share": str(pct(share)),
        },
    }


def _open_alert_types(db: Session, segment_id: int | None) -> set[AlertType]:
    query = select(RiskAlert.alert_type).where(RiskAlert.is_resolved.is_(False))
    if segment_id is None:
        query = query.where(RiskAlert.segment_id.is_(None))
    else:
        query = query.where(RiskAlert.segment_id == segment_id)
    return set(db.scalars(query).all())


def evaluate_risk_alerts(
    db: Session,
    *,
    segment_id: int | None = None,
    as_of: date | None = None,
) -> list[RiskAlert]:
    """Run the liquidity rules and stage alerts that are not already open."""
    settings = get_settings()
    flows = load_monthly_history(
        db,
        segment_id=segment_id,
        months=settings.history_months,
        as_of=as_of or date.today(),
    )

    candidates: list[dict[str, Any]] = []
    if flows:
        starting_balance = settings.simulation_starting_balance
        candidates.extend(
            rule
            for rule in (
                _runway_rule(flows, starting_balance),
                _liquidity_rule(flows, starting_balance),
                _outflow_spike_rule(flows),
            )
            if rule is not None
        )
    aging_alert = _aging_rule(aging_analysis(db, segment_id=segment_id))
    if aging_alert is not None:
        candidates.append(aging_alert)

    open_types = _open_alert_types(db, segment_id)
    created: list[RiskAlert] = []
    now = datetime.now(timezone.utc)
    for candidate in candidates:
        if candidate["alert_type"] in open_types:
            continue
        alert = RiskAlert(segment_id=segment_id, triggered_at=now, **candidate)
        db.add(alert)
        created.append(alert)
    db.flush()

    if created:
        logger.info(
            "Raised %s risk alerts for segment %s: %s",
            len(created),
            segment_id,
            ", ".join(alert.alert_type.value for alert in created),
        )
    return _ranked(created)


def _utc_naive(value: datetime | None) -> datetime:
    # SQLite hands back naive timestamps; freshly staged rows carry tzinfo
    if value is None:
        return datetime.min
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _ranked(alerts: list[RiskAlert]) -> list[RiskAlert]:
    by_time = sorted(alerts, key=lambda row: (_utc_naive(row.triggered_at), row.id or 0), reverse=True)
    return sorted(by_time, key=lambda row: SEVERITY_WEIGHT.get(row.severity, 0), reverse=True)


def list_alerts(
    db: Session,
    *,
    severity: AlertSeverity | None = None,
    resolved: bool = False,
    limit: int = 50,
) -> list[RiskAlert]:
    query = select(RiskAlert).where(RiskAlert.is_resolved.is_(resolved))
    if severity is not None:
        query = query.where(RiskAlert.severity == severity)
    severity_rank = case(
        *[(RiskAlert.severity == severity_value, weight) for severity_value, weight in SEVERITY_WEIGHT.items()],
        else_=0,
    )
    query = query.order_by(severity_rank.desc(), RiskAlert.triggered_at.desc(), RiskAlert.id.desc()).limit(limit)
    return list(db.scalars(query).all())


def alert_summary(db: Session, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    counts = db.execute(
        select(RiskAlert.severity, func.count(RiskAlert.id))
        .where(RiskAlert.is_resolved.is_(False))
        .group_by(RiskAlert.severity)
    ).all()

    since = now - timedelta(days=TREND_DAYS)
    recent = list(
        db.scalars(
            select(RiskAlert)
            .where(RiskAlert.triggered_at >= since)
            .order_by(RiskAlert.triggered_at.asc())
        ).all()
    )
    daily: dict[str, dict[str, Any]] = {}
    for alert in recent:
        day = alert.triggered_at.date().isoformat()
        row = daily.setdefault(day, {"date": day, "count": 0, "critical": 0, "high": 0})
        row["count"] += 1
        if alert.severity == AlertSeverity.critical:
            row["critical"] += 1
        elif alert.severity == AlertSeverity.high:
            row["high"] += 1

    return {
        "counts_by_severity": {severity.value: int(count) for severity, count in counts},
        "trends": list(daily.values()),
    }


def set_alert_resolution(db: Session, alert_id: int, *, is_resolved: bool) -> RiskAlert:
    alert = db.get(RiskAlert, alert_id)
    if alert is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found.")
    alert.is_resolved = is_resolved
    alert.resolved_at = datetime.now(timezone.utc) if is_resolved else None
    db.flush()
    return alert
