"""
Pydantic Schemas - 请求与响应模型
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Any, Dict
from pydantic import BaseModel, Field, field_validator, ConfigDict
from app.models.ontology import (
    EmployeeRole, FolioStatus, NightAuditStatus, TransactionType
)


# ============== 账户 Schemas ==============

class FolioResponse(BaseModel):
    id: int
    folio_number: str
    reservation_id: int
    guest_name: Optional[str]
    room_number: Optional[str]
    balance: Decimal
    credit_limit: Decimal
    payment_method: Optional[str]
    status: FolioStatus
    open_date: Optional[date]
    closed_date: Optional[date] = None
    closed_by: Optional[str] = None
    close_reason: Optional[str] = None
    is_over_credit_limit: bool = False
    model_config = ConfigDict(from_attributes=True)


class TransactionResponse(BaseModel):
    id: int
    folio_id: int
    date: date
    time: Optional[str]
    type: TransactionType
    category: Optional[str]
    description: Optional[str]
    debit: Decimal
    credit: Decimal
    balance: Decimal
    posted_by: Optional[str]
    reference_id: Optional[str] = None
    night_audit_date: Optional[date] = None
    payment_method: Optional[str] = None
    tax_details: Optional[List[Dict[str, Any]]] = None
    model_config = ConfigDict(from_attributes=True)


class FolioDetailResponse(FolioResponse):
    transactions: List[TransactionResponse] = []


class ChargeCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    category: str = "misc"
    description: str
    business_date: Optional[date] = None
    reference_id: Optional[str] = None


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: str = "cash"
    business_date: Optional[date] = None
    reference_id: Optional[str] = None
    remark: Optional[str] = None

    @field_validator('method')
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.strip().lower()


class FolioClose(BaseModel):
    reason: str = Field(..., min_length=1)
    business_date: Optional[date] = None


# ============== 套餐 Schemas ==============

class PackageComponentResponse(BaseModel):
    id: str
    category: str
    name: str
    retail_value: Decimal
    tax_rate: Decimal
    post_time: str
    max_quantity: Optional[int] = None


class PackageResponse(BaseModel):
    id: str
    code: str
    name: str
    type: str
    price_per_person: Decimal
    price_per_child: Decimal
    active: bool
    components: List[PackageComponentResponse] = []


class PackageAssign(BaseModel):
    reservation_id: int
    package_id: str
    adults: Optional[int] = Field(default=None, ge=0)
    children: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ReservationPackageResponse(BaseModel):
    id: int
    reservation_id: int
    package_id: str
    adults: int
    children: int
    start_date: Optional[date]
    end_date: Optional[date]
    posted_dates: List[str] = []
    consumptions: List[Dict[str, Any]] = []
    model_config = ConfigDict(from_attributes=True)


class ConsumptionCreate(BaseModel):
    reservation_id: int
    component_id: str
    quantity: int = Field(default=1, ge=1)
    business_date: Optional[date] = None


# ============== 夜审 Schemas ==============

class NightAuditRun(BaseModel):
    audit_date: date


class NightAuditResponse(BaseModel):
    id: int
    audit_date: date
    status: NightAuditStatus
    summary: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    run_by: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 税率 Schemas ==============

class TaxRateItem(BaseModel):
    name: str = Field(..., min_length=1)
    rate: Decimal = Field(..., ge=0)


# ============== 登录 Schemas ==============

class EmployeeResponse(BaseModel):
    id: int
    username: str
    name: str
    role: EmployeeRole
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    employee: EmployeeResponse
