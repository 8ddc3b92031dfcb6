import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.enums import AlertSeverity
from app.schemas.alerts import (
    AlertEvaluateResponse,
    AlertListResponse,
    AlertSummaryOut,
    AlertUpdateRequest,
    RiskAlertOut,
)
from app.schemas.common import CaseInsensitive
from app.services.risk_alerts import alert_summary, evaluate_risk_alerts, list_alerts, set_alert_resolution


logger = logging.getLogger(__name__)
router = APIRouter(tags=["alerts"])


@router.get("/alerts", response_model=AlertListResponse)
def get_alerts(
    severity: Annotated[AlertSeverity | None, CaseInsensitive] = Query(default=None),
    resolved: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
) -> AlertListResponse:
    alerts = list_alerts(db, severity=severity, resolved=resolved, limit=limit)
    summary = alert_summary(db)
    return AlertListResponse(
        alerts=[RiskAlertOut.model_validate(row) for row in alerts],
        summary=AlertSummaryOut(total=len(alerts), **summary),
        filters={
            "severity": severity.value if severity else None,
            "resolved": resolved,
            "limit": limit,
        },
    )


@router.post("/alerts/evaluate", response_model=AlertEvaluateResponse)
def evaluate_alerts(
    segment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> AlertEvaluateResponse:
    try:
        created = evaluate_risk_alerts(db, segment_id=segment_id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Risk evaluation failed for segment %s", segment_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate risk alerts.",
        )
    return AlertEvaluateResponse(
        created=len(created),
        alerts=[RiskAlertOut.model_validate(row) for row in created],
    )


@router.patch("/alerts/{alert_id}", response_model=RiskAlertOut)
def update_alert(
    alert_id: int,
    payload: AlertUpdateRequest,
    db: Session = Depends(get_db),
) -> RiskAlertOut:
    alert = set_alert_resolution(db, alert_id, is_resolved=payload.is_resolved)
    db.commit()
    return RiskAlertOut.model_validate(alert)
