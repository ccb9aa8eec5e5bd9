"""
账户（Folio）管理路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee, FolioStatus
from app.models.schemas import (
    ChargeCreate, FolioClose, FolioDetailResponse, FolioResponse,
    PaymentCreate, TransactionResponse
)
from app.services.errors import FolioNotFoundError, FolioPersistenceFailure
from app.services.folio_service import FolioService
from app.security.auth import get_current_user, require_manager, require_receptionist_or_manager

router = APIRouter(prefix="/folios", tags=["账户管理"])


def _not_found(e: FolioNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=List[FolioResponse])
def list_folios(
    status_filter: Optional[FolioStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """账户列表"""
    return FolioService(db).list_folios(status_filter)


@router.get("/{folio_id}", response_model=FolioDetailResponse)
def get_folio(
    folio_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """账户详情（含流水）"""
    folio = FolioService(db).get_folio(folio_id)
    if not folio:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="账户不存在")
    return folio


@router.get("/{folio_id}/statement")
def get_statement(
    folio_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """账单"""
    try:
        return FolioService(db).statement(folio_id)
    except FolioNotFoundError as e:
        raise _not_found(e)


@router.post("/{folio_id}/charges", response_model=TransactionResponse)
def post_charge(
    folio_id: int,
    data: ChargeCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """入账消费"""
    service = FolioService(db)
    try:
        return service.post_charge(
            folio_id, data.amount, data.category, data.description,
            posted_by=current_user.name,
            business_date=data.business_date,
            reference_id=data.reference_id,
        )
    except FolioNotFoundError as e:
        raise _not_found(e)
    except (ValueError, FolioPersistenceFailure) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{folio_id}/payments", response_model=TransactionResponse)
def post_payment(
    folio_id: int,
    data: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """收款"""
    service = FolioService(db)
    try:
        return service.post_payment(
            folio_id, data.amount, data.method,
            posted_by=current_user.name,
            business_date=data.business_date,
            reference_id=data.reference_id,
            remark=data.remark,
        )
    except FolioNotFoundError as e:
        raise _not_found(e)
    except (ValueError, FolioPersistenceFailure) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{folio_id}/close", response_model=FolioResponse)
def close_folio(
    folio_id: int,
    data: FolioClose,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """关闭账户（仅经理）；余额自动调整为 0"""
    service = FolioService(db)
    try:
        folio = service.get_folio_or_raise(folio_id)
        return service.close(folio, data.reason, current_user.name, data.business_date)
    except FolioNotFoundError as e:
        raise _not_found(e)
    except (ValueError, FolioPersistenceFailure) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
