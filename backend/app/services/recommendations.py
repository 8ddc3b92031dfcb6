from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.enums import RecommendationCategory, RecommendationPriority, RecommendationStatus
from app.models.recommendation import BusinessRecommendation
from app.utils.decimal_math import money


PRIORITY_WEIGHT = {
    RecommendationPriority.low: 1,
    RecommendationPriority.medium: 2,
    RecommendationPriority.high: 3,
    RecommendationPriority.urgent: 4,
}


def list_recommendations(
    db: Session,
    *,
    category: RecommendationCategory | None = None,
    priority: RecommendationPriority | None = None,
    status_filter: RecommendationStatus | None = None,
    limit: int = 20,
) -> list[BusinessRecommendation]:
    query = select(BusinessRecommendation)
    if category is not None:
        query = query.where(BusinessRecommendation.category == category)
    if priority is not None:
        query = query.where(BusinessRecommendation.priority == priority)
    if status_filter is not None:
        query = query.where(BusinessRecommendation.status == status_filter)
    rows = list(
        db.scalars(
            query.order_by(BusinessRecommendation.created_at.desc(), BusinessRecommendation.id.desc())
        ).all()
    )
    rows.sort(key=lambda row: PRIORITY_WEIGHT.get(row.priority, 0), reverse=True)
    return rows[:limit]


def recommendation_analytics(db: Session) -> dict[str, Any]:
    grouped = db.execute(
        select(
            BusinessRecommendation.category,
            BusinessRecommendation.priority,
            BusinessRecommendation.status,
            func.count(BusinessRecommendation.id),
            func.sum(BusinessRecommendation.estimated_impact),
        ).group_by(
            BusinessRecommendation.category,
            BusinessRecommendation.priority,
            BusinessRecommendation.status,
        )
    ).all()

    impact_by_category: dict[str, dict[str, Any]] = {}
    priority_distribution: dict[str, int] = {}
    status_distribution: dict[str, int] = {}
    total = 0
    for category, priority, rec_status, count, impact in grouped:
        count = int(count)
        total += count
        bucket = impact_by_category.setdefault(category.value, {"count": 0, "total_impact": money(0)})
        bucket["count"] += count
        bucket["total_impact"] = money(bucket["total_impact"] + Decimal(str(impact or 0)))
        priority_distribution[priority.value] = priority_distribution.get(priority.value, 0) + count
        status_distribution[rec_status.value] = status_distribution.get(rec_status.value, 0) + count

    return {
        "total_recommendations": total,
        "impact_by_category": impact_by_category,
        "priority_distribution": priority_distribution,
        "status_distribution": status_distribution,
    }


def update_recommendation_status(
    db: Session,
    recommendation_id: int,
    *,
    new_status: RecommendationStatus,
) -> BusinessRecommendation:
    row = db.get(BusinessRecommendation, recommendation_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recommendation not found.")
    row.status = new_status
    row.implemented_at = (
        datetime.now(timezone.utc) if new_status == RecommendationStatus.implemented else None
    )
    db.flush()
    return row
