"""
系统设置路由
税率表维护
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.models.schemas import TaxRateItem
from app.services.errors import InvalidTaxConfiguration
from app.services.tax_service import TaxConfigService
from app.security.auth import get_current_user, require_manager

router = APIRouter(prefix="/settings", tags=["系统设置"])


@router.get("/tax-rates", response_model=List[TaxRateItem])
def get_tax_rates(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """当前税率（未配置时为默认税率）"""
    return [TaxRateItem(name=r.name, rate=r.rate) for r in TaxConfigService(db).get_rates()]


@router.put("/tax-rates", response_model=List[TaxRateItem])
def update_tax_rates(
    data: List[TaxRateItem],
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """整体替换税率表（仅经理）"""
    service = TaxConfigService(db)
    try:
        rates = service.set_rates([item.model_dump() for item in data])
    except InvalidTaxConfiguration as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return [TaxRateItem(name=r.name, rate=r.rate) for r in rates]
