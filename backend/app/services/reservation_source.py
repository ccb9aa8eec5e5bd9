"""
预订来源 - 外部预订数据的唯一入口
所有外部预订记录（ORM 对象或不同字段命名的字典）在这里规范化为 ReservationView，
核心账务逻辑不再直接读取外部结构
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models.ontology import Reservation, ReservationStatus
from app.services.errors import ReservationLookupFailure

logger = logging.getLogger(__name__)

# 不同调用方使用过的状态写法
_STATUS_ALIASES = {
    "occupied": ReservationStatus.CHECKED_IN,
    "in_house": ReservationStatus.CHECKED_IN,
    "completed": ReservationStatus.CHECKED_OUT,
    "noshow": ReservationStatus.NO_SHOW,
    "canceled": ReservationStatus.CANCELLED,
}


@dataclass(frozen=True)
class ReservationView:
    """规范化后的预订"""
    id: int
    guest_name: str
    check_in: date
    check_out: date
    status: ReservationStatus
    room_number: Optional[str] = None
    room_id: Optional[int] = None
    reservation_no: Optional[str] = None
    adults: int = 1
    children: int = 0
    total_amount: Decimal = Decimal("0")
    discount_percent: Decimal = Decimal("0")
    weekend_surcharge: bool = True
    payment_method: str = "cash"

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @property
    def room_label(self) -> str:
        """展示用房号"""
        if self.room_number:
            return self.room_number
        if self.room_id is not None:
            return str(self.room_id)
        return "-"

    def is_in_house(self, business_date: date) -> bool:
        """营业日是否落在 [check_in, check_out) 区间内"""
        return self.check_in <= business_date < self.check_out


class ReservationSource(Protocol):
    """预订来源协议"""

    def list(self) -> List[ReservationView]:
        ...

    def get(self, reservation_id: int) -> Optional[ReservationView]:
        ...


def _pick(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return default


def _to_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ReservationLookupFailure(f"预订日期字段 {field_name} 无效: {value!r}")


def _to_status(value: Any) -> ReservationStatus:
    if isinstance(value, ReservationStatus):
        return value
    key = str(value or "").strip().lower().replace("-", "_")
    if key in _STATUS_ALIASES:
        return _STATUS_ALIASES[key]
    try:
        return ReservationStatus(key)
    except ValueError:
        raise ReservationLookupFailure(f"无法识别的预订状态: {value!r}")


def normalize_reservation(raw: Any) -> ReservationView:
    """
    规范化一条预订记录

    支持 Reservation ORM 对象，或字段写法为 roomNumber/room_number/roomId、
    checkIn/check_in/check_in_date、adults/adult_count 等的字典。

    Raises:
        ReservationLookupFailure: 记录缺少 ID 或日期/状态无法识别
    """
    if isinstance(raw, Reservation):
        return ReservationView(
            id=raw.id,
            reservation_no=raw.reservation_no,
            guest_name=raw.guest_name,
            room_number=raw.room.room_number if raw.room else None,
            room_id=raw.room_id,
            check_in=raw.check_in_date,
            check_out=raw.check_out_date,
            status=_to_status(raw.status),
            adults=raw.adult_count or 0,
            children=raw.child_count or 0,
            total_amount=Decimal(raw.total_amount or 0),
            discount_percent=Decimal(raw.discount_percent or 0),
            weekend_surcharge=raw.weekend_surcharge is not False,
            payment_method=raw.payment_method or "cash",
        )

    if not isinstance(raw, Mapping):
        raise ReservationLookupFailure(f"无法识别的预订记录类型: {type(raw).__name__}")

    reservation_id = _pick(raw, "id", "reservationId", "reservation_id")
    if reservation_id is None:
        raise ReservationLookupFailure("预订记录缺少 ID")

    room_number = _pick(raw, "roomNumber", "room_number", "room")
    room_id = _pick(raw, "roomId", "room_id")
    return ReservationView(
        id=int(reservation_id),
        reservation_no=_pick(raw, "reservationNo", "reservation_no", "number"),
        guest_name=_pick(raw, "guestName", "guest_name", "guest", default=""),
        room_number=str(room_number) if room_number is not None else None,
        room_id=int(room_id) if room_id is not None and str(room_id).isdigit() else None,
        check_in=_to_date(_pick(raw, "checkIn", "check_in", "check_in_date"), "check_in"),
        check_out=_to_date(_pick(raw, "checkOut", "check_out", "check_out_date"), "check_out"),
        status=_to_status(_pick(raw, "status")),
        adults=int(_pick(raw, "adults", "adult_count", default=1)),
        children=int(_pick(raw, "children", "child_count", default=0)),
        total_amount=Decimal(str(_pick(raw, "totalAmount", "total_amount", default=0))),
        discount_percent=Decimal(str(_pick(raw, "discountPercent", "discount_percent", default=0))),
        weekend_surcharge=raw.get("weekendSurcharge", raw.get("weekend_surcharge", True)) is not False,
        payment_method=_pick(raw, "paymentMethod", "payment_method", default="cash"),
    )


class SqlReservationSource:
    """从本地数据库读取预订"""

    def __init__(self, db: Session):
        self.db = db

    def list(self) -> List[ReservationView]:
        """
        读取全部预订

        Raises:
            ReservationLookupFailure: 数据库不可用（整个步骤无法执行）
        """
        try:
            rows = self.db.query(Reservation).options(
                joinedload(Reservation.room)
            ).order_by(Reservation.id).all()
        except SQLAlchemyError as e:
            raise ReservationLookupFailure(f"预订来源不可用: {e}") from e

        result = []
        for row in rows:
            try:
                result.append(normalize_reservation(row))
            except ReservationLookupFailure as e:
                logger.warning(f"跳过无法规范化的预订 {row.id}: {e}")
        return result

    def get(self, reservation_id: int) -> Optional[ReservationView]:
        try:
            row = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        except SQLAlchemyError as e:
            raise ReservationLookupFailure(f"预订来源不可用: {e}", reservation_id) from e
        return normalize_reservation(row) if row else None


class StaticReservationSource:
    """由外部系统推送的预订记录列表（字典或 ORM 对象）"""

    def __init__(self, records: Iterable[Any]):
        self._records = [normalize_reservation(r) for r in records]

    def list(self) -> List[ReservationView]:
        return list(self._records)

    def get(self, reservation_id: int) -> Optional[ReservationView]:
        for record in self._records:
            if record.id == reservation_id:
                return record
        return None
