"""
夜审路由
"""
from datetime import date
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.models.schemas import NightAuditResponse, NightAuditRun
from app.services.errors import NightAuditError
from app.services.night_audit_service import NightAuditService
from app.security.auth import get_current_user, require_manager

router = APIRouter(prefix="/night-audit", tags=["夜审"])


@router.post("/run", response_model=NightAuditResponse)
def run_night_audit(
    data: NightAuditRun,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """执行夜审（仅经理）；同一营业日可重复执行"""
    service = NightAuditService(db)
    try:
        return service.run_for_property(data.audit_date, current_user.name)
    except NightAuditError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("", response_model=List[NightAuditResponse])
def list_night_audits(
    limit: int = 30,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """夜审历史"""
    return NightAuditService(db).list_audits(limit)


@router.get("/status")
def get_night_audit_status(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """最后夜审日期"""
    return {"last_audit_date": NightAuditService(db).get_last_closed_date()}


@router.get("/{audit_date}", response_model=NightAuditResponse)
def get_night_audit(
    audit_date: date,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """某营业日的夜审记录"""
    record = NightAuditService(db).get_audit(audit_date)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="该日期尚未夜审")
    return record
