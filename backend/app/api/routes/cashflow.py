from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.cashflow import CashFlowResponse
from app.services.cashflow_analytics import cashflow_overview


router = APIRouter(tags=["cashflow"])


@router.get("/cashflow", response_model=CashFlowResponse)
def get_cashflow(
    segment_id: int | None = Query(default=None),
    months: int = Query(default=12, ge=1, le=36),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> CashFlowResponse:
    overview = cashflow_overview(
        db,
        months=months,
        segment_id=segment_id,
        start=start_date,
        end=end_date,
    )
    return CashFlowResponse(
        summary=overview.summary,
        monthly_trend=overview.monthly_trend,
        segment_performance=overview.segment_performance,
        aging_analysis=overview.aging_analysis,
        filters={
            "segment_id": segment_id,
            "months": months,
            "start_date": start_date,
            "end_date": end_date,
        },
    )
