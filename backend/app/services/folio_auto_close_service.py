"""
账户自动关闭服务 - 夜审第三步
按优先级匹配关账规则（第一条命中即关闭），余额通过调整流水归零后再关闭
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.ontology import Folio, FolioStatus, ReservationStatus
from app.services.batch_result import AutoCloseSummary
from app.services.errors import ReservationLookupFailure
from app.services.event_bus import Event
from app.services.folio_service import FolioService
from app.services.reservation_source import ReservationSource, ReservationView, SqlReservationSource

logger = logging.getLogger(__name__)


def closure_reason(folio: Folio, reservation: ReservationView, audit_date: date) -> Optional[str]:
    """
    关账规则（按顺序，第一条命中生效）：
    1. 余额为 0 且已退房
    2. 余额为 0 且离店日期早于营业日
    3. 余额为 0 且未到店
    4. 贷方余额且最后一笔流水距营业日超过 CREDIT_INACTIVE_DAYS 天
    """
    balance = Decimal(folio.balance or 0)
    if balance == 0:
        if reservation.status == ReservationStatus.CHECKED_OUT:
            return "Zero balance - Checked out"
        if reservation.check_out < audit_date:
            return "Zero balance - Past checkout"
        if reservation.status == ReservationStatus.NO_SHOW:
            return "Zero balance - No show"
        return None

    if balance < 0:
        last_activity = folio.transactions[-1].date if folio.transactions else folio.open_date
        if last_activity and (audit_date - last_activity).days > settings.CREDIT_INACTIVE_DAYS:
            return f"Credit balance - Inactive {settings.CREDIT_INACTIVE_DAYS}+ days"
    return None


class FolioAutoCloseService:
    """账户自动关闭服务"""

    def __init__(
        self,
        db: Session,
        reservation_source: Optional[ReservationSource] = None,
        event_publisher: Callable[[Event], Any] = None,
    ):
        self.db = db
        self.reservations = reservation_source or SqlReservationSource(db)
        self.folios = FolioService(db, event_publisher)

    def auto_close_folios(self, audit_date: date) -> AutoCloseSummary:
        summary = AutoCloseSummary()

        for folio in self.folios.list_folios(FolioStatus.OPEN):
            detail = {"folio_id": folio.id, "folio_number": folio.folio_number}
            try:
                reservation = self.reservations.get(folio.reservation_id)
            except ReservationLookupFailure as e:
                logger.warning(f"Reservation lookup failed for folio {folio.folio_number}: {e}")
                reservation = None

            if not reservation:
                summary.skipped += 1
                summary.details.append({**detail, "status": "skipped", "message": "Reservation not found"})
                continue

            reason = closure_reason(folio, reservation, audit_date)
            if not reason:
                summary.skipped += 1
                continue

            try:
                balance = Decimal(folio.balance or 0)
                self.folios.close(folio, reason, settings.NIGHT_AUDIT_OPERATOR, audit_date)
                summary.closed += 1
                summary.details.append({
                    **detail, "status": "closed", "reason": reason, "balance": balance,
                })
            except Exception as e:
                logger.error(f"Auto-close failed for folio {folio.folio_number}", exc_info=True)
                summary.errors += 1
                summary.details.append({**detail, "status": "error", "error": str(e)})

        logger.info(
            f"Auto-close {audit_date}: closed={summary.closed} "
            f"skipped={summary.skipped} errors={summary.errors}"
        )
        return summary
