"""
领域事件定义 (Domain Events)
账户与夜审相关的业务事件
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    # 账户相关
    FOLIO_CREATED = "folio.created"
    FOLIO_CLOSED = "folio.closed"
    PAYMENT_RECEIVED = "payment.received"

    # 夜审相关
    NIGHT_AUDIT_COMPLETED = "night_audit.completed"
    NIGHT_AUDIT_FAILED = "night_audit.failed"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（datetime 转 ISO 字符串）"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
        return result


@dataclass
class FolioCreatedData(BaseEventData):
    """账户创建事件数据"""
    folio_id: int = 0
    folio_number: str = ""
    reservation_id: int = 0
    guest_name: str = ""
    room_number: str = ""


@dataclass
class FolioClosedData(BaseEventData):
    """账户关闭事件数据"""
    folio_id: int = 0
    folio_number: str = ""
    reservation_id: int = 0
    reason: str = ""
    adjustment_amount: float = 0.0
    closed_by: str = ""


@dataclass
class PaymentReceivedData(BaseEventData):
    """收款事件数据"""
    folio_id: int = 0
    transaction_id: int = 0
    amount: float = 0.0
    method: str = ""
    posted_by: str = ""


@dataclass
class NightAuditCompletedData(BaseEventData):
    """夜审完成事件数据"""
    audit_date: str = ""
    room_posted: int = 0
    package_posted: int = 0
    folios_closed: int = 0
    total_posted_amount: float = 0.0
    last_audit_date: Optional[str] = None


@dataclass
class NightAuditFailedData(BaseEventData):
    """夜审失败事件数据"""
    audit_date: str = ""
    step: str = ""
    error: str = ""
