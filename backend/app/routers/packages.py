"""
套餐路由
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.hotel.packages import PackageDefinition, list_packages
from app.models.ontology import Employee
from app.models.schemas import (
    ConsumptionCreate, PackageAssign, PackageResponse,
    ReservationPackageResponse, TransactionResponse
)
from app.services.errors import (
    FolioPersistenceFailure, PackageDefinitionMissing, ReservationLookupFailure
)
from app.services.package_posting_service import PackagePostingService
from app.security.auth import get_current_user, require_receptionist_or_manager

router = APIRouter(prefix="/packages", tags=["套餐管理"])


def _to_response(package: PackageDefinition) -> PackageResponse:
    return PackageResponse(
        id=package.id,
        code=package.code,
        name=package.name,
        type=package.type.value,
        price_per_person=package.price_per_person,
        price_per_child=package.price_per_child,
        active=package.active,
        components=[
            {
                "id": c.id,
                "category": c.category,
                "name": c.name,
                "retail_value": c.retail_value,
                "tax_rate": c.tax_rate,
                "post_time": rule.posting_time.value if (rule := package.get_rule(c.id)) else "",
                "max_quantity": c.max_quantity,
            }
            for c in package.components
        ],
    )


@router.get("", response_model=List[PackageResponse])
def get_packages(
    active_only: bool = True,
    current_user: Employee = Depends(get_current_user)
):
    """套餐目录"""
    return [_to_response(p) for p in list_packages(active_only)]


@router.post("/assign", response_model=ReservationPackageResponse)
def assign_package(
    data: PackageAssign,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """为预订分配套餐"""
    service = PackagePostingService(db)
    try:
        return service.assign_package(
            data.reservation_id, data.package_id,
            adults=data.adults,
            children=data.children,
            start_date=data.start_date,
            end_date=data.end_date,
        )
    except (PackageDefinitionMissing, ReservationLookupFailure) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/consumption", response_model=TransactionResponse)
def record_consumption(
    data: ConsumptionCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """记录按消费入账的套餐组件"""
    service = PackagePostingService(db)
    try:
        return service.record_consumption(
            data.reservation_id, data.component_id,
            quantity=data.quantity,
            business_date=data.business_date,
            posted_by=current_user.name,
        )
    except (PackageDefinitionMissing, ReservationLookupFailure) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (ValueError, FolioPersistenceFailure) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
