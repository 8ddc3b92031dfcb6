from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.forecast import CashFlowForecast
from app.models.segment import BusinessSegment
from app.models.transaction import CashTransaction
from app.schemas.segments import SegmentListResponse, SegmentOut


router = APIRouter(tags=["segments"])


@router.get("/segments", response_model=SegmentListResponse)
def list_segments(db: Session = Depends(get_db)) -> SegmentListResponse:
    segments = list(
        db.scalars(
            select(BusinessSegment)
            .where(BusinessSegment.is_active.is_(True))
            .order_by(BusinessSegment.name.asc())
        ).all()
    )
    tx_counts = dict(
        db.execute(
            select(CashTransaction.segment_id, func.count(CashTransaction.id)).group_by(CashTransaction.segment_id)
        ).all()
    )
    forecast_counts = dict(
        db.execute(
            select(CashFlowForecast.segment_id, func.count(CashFlowForecast.id)).group_by(
                CashFlowForecast.segment_id
            )
        ).all()
    )
    return SegmentListResponse(
        segments=[
            SegmentOut(
                id=segment.id,
                name=segment.name,
                description=segment.description,
                is_active=segment.is_active,
                transaction_count=int(tx_counts.get(segment.id, 0)),
                forecast_count=int(forecast_counts.get(segment.id, 0)),
                created_at=segment.created_at,
                updated_at=segment.updated_at,
            )
            for segment in segments
        ]
    )
