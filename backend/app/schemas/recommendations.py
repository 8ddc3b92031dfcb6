from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel

from app.models.enums import RecommendationCategory, RecommendationPriority, RecommendationStatus
from app.schemas.common import CaseInsensitive, ORMModel


class RecommendationOut(ORMModel):
    id: int
    segment_id: int | None = None
    category: RecommendationCategory
    priority: RecommendationPriority
    status: RecommendationStatus
    title: str
    description: str
    estimated_impact: Decimal | None = None
    implementation_cost: Decimal | None = None
    time_to_implement: str | None = None
    confidence: float | None = None
    based_on_data: dict[str, Any] | None = None
    created_at: datetime | None = None
    implemented_at: datetime | None = None


class CategoryImpactOut(BaseModel):
    count: int
    total_impact: Decimal


class RecommendationAnalyticsOut(BaseModel):
    total_recommendations: int
    impact_by_category: dict[str, CategoryImpactOut]
    priority_distribution: dict[str, int]
    status_distribution: dict[str, int]


class RecommendationListResponse(BaseModel):
    recommendations: list[RecommendationOut]
    analytics: RecommendationAnalyticsOut
    filters: dict[str, Any]


class RecommendationUpdateRequest(BaseModel):
    status: Annotated[RecommendationStatus, CaseInsensitive]
