import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.kpis import KPIOverviewResponse, KPISnapshotOut
from app.services.cashflow_analytics import compute_kpi_snapshot, kpi_overview


logger = logging.getLogger(__name__)
router = APIRouter(tags=["kpis"])


@router.get("/kpis", response_model=KPIOverviewResponse)
def get_kpis(
    segment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> KPIOverviewResponse:
    payload = kpi_overview(db, segment_id=segment_id)
    return KPIOverviewResponse(
        current=KPISnapshotOut.model_validate(payload["current"]),
        trends=[KPISnapshotOut.model_validate(row) for row in payload["trends"]],
        changes=payload["changes"],
    )


@router.post("/kpis/refresh", response_model=KPISnapshotOut)
def refresh_kpis(
    segment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> KPISnapshotOut:
    try:
        snapshot = compute_kpi_snapshot(db, segment_id=segment_id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("KPI refresh failed for segment %s", segment_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to refresh KPIs.",
        )
    db.refresh(snapshot)
    return KPISnapshotOut.model_validate(snapshot)
