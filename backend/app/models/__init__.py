from app.models.alert import RiskAlert
from app.models.enums import (
    AlertSeverity,
    AlertType,
    ForecastModel,
    RecommendationCategory,
    RecommendationPriority,
    RecommendationStatus,
    ScenarioType,
    TransactionType,
)
from app.models.forecast import CashFlowForecast
from app.models.kpi import KPISnapshot
from app.models.recommendation import BusinessRecommendation
from app.models.segment import BusinessSegment
from app.models.simulation import SimulationResult
from app.models.transaction import CashTransaction

__all__ = [
    "RiskAlert",
    "AlertSeverity",
    "AlertType",
    "ForecastModel",
    "RecommendationCategory",
    "RecommendationPriority",
    "RecommendationStatus",
    "ScenarioType",
    "TransactionType",
    "CashFlowForecast",
    "KPISnapshot",
    "BusinessRecommendation",
    "BusinessSegment",
    "SimulationResult",
    "CashTransaction",
]
