from fastapi import APIRouter, Depends, Query
from datetime import date
from typing import List
from sqlalchemy.orm import Session
from order_service.api.deps import get_db
from order_service.api.schemas import DailyRevenue, ReportSummary, StatusCount, TopVariant
from order_service.core.auth import get_current_principal
from order_service.services import reports
from order_service.services.policy import Principal

router = APIRouter()

@router.get("/v1/reports/summary", response_model=ReportSummary)
def summary(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return ReportSummary(**reports.summary(db, principal))

@router.get("/v1/reports/orders-by-status", response_model=List[StatusCount])
def orders_by_status(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [StatusCount(**row) for row in reports.orders_by_status(db, principal)]

@router.get("/v1/reports/revenue-by-date", response_model=List[DailyRevenue])
def revenue_by_date(
    date_from: date = Query(alias="from"),
    date_to: date = Query(alias="to"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return [DailyRevenue(**row) for row in reports.revenue_by_date(db, principal, date_from, date_to)]

@router.get("/v1/reports/top-variants", response_model=List[TopVariant])
def top_variants(limit: int = Query(5, ge=1, le=100), principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [TopVariant(**row) for row in reports.top_variants(db, principal, limit)]
