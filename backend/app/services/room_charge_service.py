"""
房费入账服务 - 夜审第一步
为每个在住预订按晚入账房费（含税价），按 ROOM-<预订ID>-<营业日> 保证同一晚只入账一次
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.ontology import FolioTransaction, ReservationStatus, TransactionType
from app.services.batch_result import PostingSummary
from app.services.event_bus import Event
from app.services.folio_service import FolioService
from app.services.reservation_source import ReservationSource, ReservationView, SqlReservationSource
from app.services.tax_service import TaxConfigService, TaxRateConfig, breakdown, quantize

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def room_reference(reservation_id: int, audit_date: date) -> str:
    return f"ROOM-{reservation_id}-{audit_date.isoformat()}"


def calculate_room_rate(
    reservation: ReservationView,
    business_date: date,
    tax_rates: Optional[List[TaxRateConfig]] = None,
) -> Dict[str, Any]:
    """
    计算某晚房费
    每晚基础价 = 总房费 / 晚数；周六、周日加价；再扣折扣。结果为含税价，税额反算。
    """
    nights = reservation.nights
    total = Decimal(reservation.total_amount or 0)
    base_rate = total / nights if nights > 0 else total

    adjusted_rate = base_rate
    is_weekend = business_date.weekday() >= 5
    if is_weekend and reservation.weekend_surcharge:
        adjusted_rate = base_rate * (1 + settings.WEEKEND_SURCHARGE_PERCENT / HUNDRED)

    discount = adjusted_rate * Decimal(reservation.discount_percent or 0) / HUNDRED
    gross_rate = quantize(adjusted_rate - discount)
    taxes = breakdown(gross_rate, tax_rates)

    return {
        "base_rate": quantize(base_rate),
        "adjusted_rate": quantize(adjusted_rate),
        "discount": quantize(discount),
        "is_weekend": is_weekend,
        "gross_rate": gross_rate,
        "net_rate": taxes.net_revenue,
        "total_tax": taxes.total_tax,
        "tax_details": taxes.to_tax_details(),
    }


class RoomChargePostingService:
    """房费入账服务"""

    def __init__(
        self,
        db: Session,
        reservation_source: Optional[ReservationSource] = None,
        event_publisher: Callable[[Event], Any] = None,
    ):
        self.db = db
        self.reservations = reservation_source or SqlReservationSource(db)
        self.folios = FolioService(db, event_publisher)

    def post_room_charges(self, audit_date: date) -> PostingSummary:
        """
        为营业日入账全部在住客人的房费

        Raises:
            ReservationLookupFailure: 预订来源整体不可用
        """
        summary = PostingSummary()
        tax_rates = TaxConfigService(self.db).get_rates()

        in_house = [
            r for r in self.reservations.list()
            if r.status == ReservationStatus.CHECKED_IN and r.is_in_house(audit_date)
        ]
        logger.info(f"Room charge posting {audit_date}: {len(in_house)} in-house reservations")

        for reservation in in_house:
            detail = {
                "reservation_id": reservation.id,
                "room": reservation.room_label,
                "guest": reservation.guest_name,
            }
            try:
                self._post_for_reservation(reservation, audit_date, tax_rates, summary, detail)
            except Exception as e:
                self.folios.discard()
                logger.error(f"Room charge failed for reservation {reservation.id}", exc_info=True)
                summary.record_failed(detail, str(e))

        return summary

    def _post_for_reservation(
        self,
        reservation: ReservationView,
        audit_date: date,
        tax_rates: List[TaxRateConfig],
        summary: PostingSummary,
        detail: Dict[str, Any],
    ) -> None:
        reference_id = room_reference(reservation.id, audit_date)
        if self.folios.find_by_reference(reference_id) or self._has_room_charge(reservation.id, audit_date):
            summary.record_skipped(detail, "Room charge already posted for this date")
            return

        rate = calculate_room_rate(reservation, audit_date, tax_rates)
        if rate["gross_rate"] <= 0:
            summary.record_skipped(detail, "No room rate")
            return

        folio = self.folios.get_or_create_folio(reservation, audit_date)
        with self.folios.locked(folio):
            self.folios.append_transaction(
                folio,
                type=TransactionType.CHARGE,
                category="room",
                description=f"Room Charge - Room {reservation.room_label}",
                debit=rate["gross_rate"],
                business_date=audit_date,
                posted_by=settings.NIGHT_AUDIT_OPERATOR,
                reference_id=reference_id,
                night_audit_date=audit_date,
                tax_details=rate["tax_details"],
            )
            self.folios.save(folio)

        summary.record_posted(
            {**detail, "folio_number": folio.folio_number, "net_rate": rate["net_rate"]},
            rate["gross_rate"],
        )

    def _has_room_charge(self, reservation_id: int, audit_date: date) -> bool:
        """同一晚是否已有房费流水（包括预先入账的房费）"""
        folio = self.folios.get_folio_by_reservation(reservation_id)
        if not folio:
            return False
        return self.db.query(FolioTransaction).filter(
            FolioTransaction.folio_id == folio.id,
            FolioTransaction.type == TransactionType.CHARGE,
            FolioTransaction.category == "room",
            FolioTransaction.night_audit_date == audit_date,
        ).first() is not None
