from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.database import get_db
from stockledger.services import report_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/inventory")
def inventory_report(
    store_id: int | None = None,
    category: str | None = None,
    low_stock_threshold: int | None = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    return report_service.inventory_report(
        db, store_id=store_id, category=category, low_stock_threshold=low_stock_threshold
    )


@router.get("/movements")
def movement_report(
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    store_id: int | None = None,
    db: Session = Depends(get_db),
):
    return report_service.movement_report(db, start_date=start_date, end_date=end_date, store_id=store_id)


@router.get("/consistency")
def consistency_report(store_id: int | None = None, db: Session = Depends(get_db)):
    return report_service.consistency_report(db, store_id=store_id)
