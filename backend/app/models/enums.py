import enum


class _CaseInsensitiveEnum(str, enum.Enum):
    @classmethod
    def _missing_(cls, value: object):
        # accept "BASE" / "Stress_Test" style values sent by dashboard clients
        if isinstance(value, str):
            lowered = value.lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class TransactionType(_CaseInsensitiveEnum):
    inflow = "inflow"
    outflow = "outflow"


class ScenarioType(_CaseInsensitiveEnum):
    base = "base"
    optimistic = "optimistic"
    pessimistic = "pessimistic"
    stress_test = "stress_test"


class ForecastModel(_CaseInsensitiveEnum):
    prophet = "prophet"
    arima = "arima"
    regression = "regression"
    # declared for stored rows; served by the ARIMA variant
    lstm = "lstm"
    ensemble = "ensemble"


class AlertSeverity(_CaseInsensitiveEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class AlertType(_CaseInsensitiveEnum):
    liquidity_risk = "liquidity_risk"
    outflow_spike = "outflow_spike"
    receivable_aging = "receivable_aging"
    runway_warning = "runway_warning"
    seasonal_anomaly = "seasonal_anomaly"


class RecommendationCategory(_CaseInsensitiveEnum):
    credit_line = "credit_line"
    collection_strategy = "collection_strategy"
    payment_terms = "payment_terms"
    working_capital = "working_capital"
    cost_optimization = "cost_optimization"
    revenue_acceleration = "revenue_acceleration"
    cash_management = "cash_management"


class RecommendationPriority(_CaseInsensitiveEnum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class RecommendationStatus(_CaseInsensitiveEnum):
    pending = "pending"
    in_progress = "in_progress"
    implemented = "implemented"
    dismissed = "dismissed"
