"""
财务报表路由
"""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.services.errors import ReservationLookupFailure
from app.services.financial_report_service import FinancialReportService
from app.security.auth import get_current_user

router = APIRouter(prefix="/reports", tags=["财务报表"])


@router.get("/daily")
def get_daily_report(
    report_date: Optional[date] = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """日收入报表"""
    return FinancialReportService(db).daily_revenue_report(report_date or date.today())


@router.get("/manager")
def get_manager_report(
    report_date: Optional[date] = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """经理日报"""
    try:
        return FinancialReportService(db).manager_report(report_date or date.today())
    except ReservationLookupFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/monthly")
def get_monthly_report(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """月报"""
    return FinancialReportService(db).monthly_report(year, month)
