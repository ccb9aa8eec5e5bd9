"""
夜审服务 - 营业日批处理入口
步骤：房费入账 -> 套餐入账 -> 自动关账 -> 税费与付款汇总
单条失败只计入各步骤的结果；某一步骤整体无法执行时本次夜审失败，最后夜审日期不前移。
同一营业日可以重复执行，已入账的费用不会重复入账。
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.events import EventType, NightAuditCompletedData, NightAuditFailedData
from app.models.ontology import HotelProperty, NightAudit, NightAuditStatus
from app.services.errors import NightAuditError
from app.services.event_bus import event_bus, Event
from app.services.financial_report_service import FinancialReportService
from app.services.folio_auto_close_service import FolioAutoCloseService
from app.services.package_posting_service import PackagePostingService
from app.services.reservation_source import ReservationSource, SqlReservationSource
from app.services.room_charge_service import RoomChargePostingService

logger = logging.getLogger(__name__)


def _to_json(value: Any) -> Any:
    """夜审报告转为可存入 JSON 列的结构（金额保留为字符串）"""
    if isinstance(value, dict):
        return {str(k): _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class NightAuditService:
    """夜审服务"""

    def __init__(
        self,
        db: Session,
        reservation_source: Optional[ReservationSource] = None,
        event_publisher: Callable[[Event], Any] = None,
    ):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        source = reservation_source or SqlReservationSource(db)
        self.room_charges = RoomChargePostingService(db, source, self._publish_event)
        self.package_posting = PackagePostingService(db, source, self._publish_event)
        self.auto_close = FolioAutoCloseService(db, source, self._publish_event)
        self.reports = FinancialReportService(db, source)

    # ---------- 批处理 ----------

    def run_night_audit(self, audit_date: date, last_audit_date: Optional[date] = None) -> Dict[str, Any]:
        """
        执行一个营业日的夜审

        Args:
            audit_date: 营业日
            last_audit_date: 当前的最后夜审日期

        Returns:
            夜审报告，last_audit_date 为前移后的日期（不会后退）

        Raises:
            NightAuditError: 某一步骤整体失败
        """
        logger.info(f"Night audit {audit_date} started (last audit: {last_audit_date})")
        steps = [
            ("room_posting", lambda: self.room_charges.post_room_charges(audit_date).to_dict()),
            ("package_posting", lambda: self.package_posting.post_package_charges(audit_date).to_dict()),
            ("auto_close", lambda: self.auto_close.auto_close_folios(audit_date).to_dict()),
            ("tax_summary", lambda: self._tax_summary(audit_date)),
        ]

        report: Dict[str, Any] = {"audit_date": audit_date}
        for step, run in steps:
            try:
                report[step] = run()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Night audit {audit_date} failed at {step}", exc_info=True)
                self._publish_event(Event(
                    event_type=EventType.NIGHT_AUDIT_FAILED,
                    timestamp=datetime.now(),
                    data=NightAuditFailedData(
                        audit_date=audit_date.isoformat(),
                        step=step,
                        error=str(e),
                    ).to_dict(),
                    source="night_audit_service",
                ))
                raise NightAuditError(audit_date, step, e) from e

        new_marker = max(last_audit_date, audit_date) if last_audit_date else audit_date
        report["last_audit_date"] = new_marker

        room, package = report["room_posting"], report["package_posting"]
        logger.info(
            f"Night audit {audit_date} completed: rooms={room['posted']} "
            f"packages={package['posted']} closed={report['auto_close']['closed']}"
        )
        self._publish_event(Event(
            event_type=EventType.NIGHT_AUDIT_COMPLETED,
            timestamp=datetime.now(),
            data=NightAuditCompletedData(
                audit_date=audit_date.isoformat(),
                room_posted=room["posted"],
                package_posted=package["posted"],
                folios_closed=report["auto_close"]["closed"],
                total_posted_amount=float(room["total_amount"] + package["total_amount"]),
                last_audit_date=new_marker.isoformat(),
            ).to_dict(),
            source="night_audit_service",
        ))
        return report

    def _tax_summary(self, audit_date: date) -> Dict[str, Any]:
        daily = self.reports.daily_revenue_report(audit_date)
        return {
            "total_revenue": daily["revenue"]["total"],
            "taxes": daily["taxes"],
            "posted_taxes": daily["posted_taxes"],
            "payments": daily["payments"],
        }

    # ---------- 物业级执行与历史 ----------

    def get_property(self) -> HotelProperty:
        """当前物业（不存在时按配置创建）"""
        prop = self.db.query(HotelProperty).order_by(HotelProperty.id).first()
        if not prop:
            prop = HotelProperty(name=settings.PROPERTY_NAME)
            self.db.add(prop)
            self.db.commit()
            self.db.refresh(prop)
        return prop

    def run_for_property(self, audit_date: date, operator: Optional[str] = None) -> NightAudit:
        """
        对物业执行夜审，写回最后夜审日期并记录夜审历史

        Raises:
            NightAuditError: 夜审失败（失败记录已保存）
        """
        operator = operator or settings.NIGHT_AUDIT_OPERATOR
        prop = self.get_property()
        started_at = datetime.now()

        try:
            report = self.run_night_audit(audit_date, prop.last_audit_date)
        except NightAuditError as e:
            self._save_audit(audit_date, NightAuditStatus.FAILED, operator, started_at, error=str(e))
            raise

        prop = self.get_property()
        prop.last_audit_date = report["last_audit_date"]
        return self._save_audit(audit_date, NightAuditStatus.COMPLETED, operator, started_at, summary=report)

    def _save_audit(
        self,
        audit_date: date,
        status: NightAuditStatus,
        operator: str,
        started_at: datetime,
        summary: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> NightAudit:
        record = self.get_audit(audit_date)
        if not record:
            record = NightAudit(audit_date=audit_date)
            self.db.add(record)

        record.status = status
        record.summary = _to_json(summary) if summary is not None else None
        record.error_message = error
        record.run_by = operator
        record.started_at = started_at
        record.completed_at = datetime.now()
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_audit(self, audit_date: date) -> Optional[NightAudit]:
        return self.db.query(NightAudit).filter(NightAudit.audit_date == audit_date).first()

    def list_audits(self, limit: int = 30) -> List[NightAudit]:
        return self.db.query(NightAudit).order_by(NightAudit.audit_date.desc()).limit(limit).all()

    def is_date_closed(self, audit_date: date) -> bool:
        """营业日是否已完成夜审"""
        record = self.get_audit(audit_date)
        return bool(record and record.status == NightAuditStatus.COMPLETED)

    def get_last_closed_date(self) -> Optional[date]:
        return self.get_property().last_audit_date
