from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.enums import RecommendationCategory, RecommendationPriority, RecommendationStatus
from app.schemas.common import CaseInsensitive
from app.schemas.recommendations import (
    RecommendationListResponse,
    RecommendationOut,
    RecommendationUpdateRequest,
)
from app.services.recommendations import (
    list_recommendations,
    recommendation_analytics,
    update_recommendation_status,
)


router = APIRouter(tags=["recommendations"])


@router.get("/recommendations", response_model=RecommendationListResponse)
def get_recommendations(
    category: Annotated[RecommendationCategory | None, CaseInsensitive] = Query(default=None),
    priority: Annotated[RecommendationPriority | None, CaseInsensitive] = Query(default=None),
    status: Annotated[RecommendationStatus | None, CaseInsensitive] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> RecommendationListResponse:
    rows = list_recommendations(
        db,
        category=category,
        priority=priority,
        status_filter=status,
        limit=limit,
    )
    return RecommendationListResponse(
        recommendations=[RecommendationOut.model_validate(row) for row in rows],
        analytics=recommendation_analytics(db),
        filters={
            "category": category.value if category else None,
            "priority": priority.value if priority else None,
            "status": status.value if status else None,
            "limit": limit,
        },
    )


@router.patch("/recommendations/{recommendation_id}", response_model=RecommendationOut)
def update_recommendation(
    recommendation_id: int,
    payload: RecommendationUpdateRequest,
    db: Session = Depends(get_db),
) -> RecommendationOut:
    row = update_recommendation_status(db, recommendation_id, new_status=payload.status)
    db.commit()
    return RecommendationOut.model_validate(row)
