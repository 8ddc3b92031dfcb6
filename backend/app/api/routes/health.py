import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.forecast import CashFlowForecast
from app.models.kpi import KPISnapshot
from app.models.segment import BusinessSegment
from app.models.transaction import CashTransaction
from app.schemas.segments import HealthResponse


logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health(db: Session = Depends(get_db)) -> HealthResponse:
    started = time.monotonic()
    try:
        counts = {
            "segment_count": db.scalar(select(func.count(BusinessSegment.id))) or 0,
            "transaction_count": db.scalar(select(func.count(CashTransaction.id))) or 0,
            "kpi_count": db.scalar(select(func.count(KPISnapshot.id))) or 0,
            "forecast_count": db.scalar(select(func.count(CashFlowForecast.id))) or 0,
        }
    except SQLAlchemyError:
        logger.exception("Health check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database check failed.",
        )
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        latency_ms=round((time.monotonic() - started) * 1000, 2),
        data=counts,
    )
