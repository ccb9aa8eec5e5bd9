"""
套餐入账服务 - 夜审第二步
为分配了套餐的在住预订按组件入账当晚费用；组件零售价为不含税价，税额加在其上。
幂等：posted_dates 记录已入账日期，PKG-<预订ID>-<营业日>-<组件ID> 参考号防止重复流水
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.hotel.packages import (
    PackageComponent, PackageDefinition, PostingTime, get_package
)
from app.models.ontology import ReservationPackage, ReservationStatus, TransactionType
from app.services.batch_result import PostingSummary
from app.services.errors import PackageDefinitionMissing, ReservationLookupFailure
from app.services.event_bus import Event
from app.services.folio_service import FolioService
from app.services.reservation_source import ReservationSource, ReservationView, SqlReservationSource
from app.services.tax_service import exclusive_tax, quantize, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def package_reference(reservation_id: int, audit_date: date, component_id: str) -> str:
    return f"PKG-{reservation_id}-{audit_date.isoformat()}-{component_id}"


def component_charge(component: PackageComponent, adults: int, children: int) -> Dict[str, Decimal]:
    """
    单个组件一晚的费用
    成人按零售价，儿童按零售价 * CHILD_PRICE_FACTOR；税额 = 净额 * 税率（加在净额之上）
    """
    adult_amount = component.retail_value * adults
    child_amount = component.retail_value * settings.CHILD_PRICE_FACTOR * children
    net = adult_amount + child_amount
    tax, gross = exclusive_tax(net, component.tax_rate)
    return {
        "adult_amount": quantize(adult_amount),
        "child_amount": quantize(child_amount),
        "net": quantize(net),
        "tax": tax,
        "gross": gross,
    }


def nightly_rate(package: PackageDefinition, adults: int, children: int) -> Decimal:
    """套餐每晚夜审入账总额（含税）"""
    return sum(
        (component_charge(c, adults, children)["gross"]
         for c in package.components_for(PostingTime.NIGHT_AUDIT)),
        ZERO,
    )


class PackagePostingService:
    """套餐入账服务"""

    def __init__(
        self,
        db: Session,
        reservation_source: Optional[ReservationSource] = None,
        event_publisher: Callable[[Event], Any] = None,
        catalog: Callable[[str], Optional[PackageDefinition]] = get_package,
    ):
        self.db = db
        self.reservations = reservation_source or SqlReservationSource(db)
        self.folios = FolioService(db, event_publisher)
        self._catalog = catalog

    # ---------- 套餐分配 ----------

    def get_assignment(self, reservation_id: int) -> Optional[ReservationPackage]:
        return self.db.query(ReservationPackage).filter(
            ReservationPackage.reservation_id == reservation_id
        ).first()

    def assign_package(
        self,
        reservation_id: int,
        package_id: str,
        adults: Optional[int] = None,
        children: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ReservationPackage:
        """
        为预订分配套餐（已存在则更新）

        Raises:
            PackageDefinitionMissing: 套餐不存在
            ReservationLookupFailure: 预订不存在
            ValueError: 套餐停用，或已入账后更换套餐
        """
        package = self._catalog(package_id)
        if not package:
            raise PackageDefinitionMissing(package_id)
        if not package.active:
            raise ValueError(f"套餐 {package.code} 已停用")

        reservation = self.reservations.get(reservation_id)
        if not reservation:
            raise ReservationLookupFailure(f"预订不存在: {reservation_id}", reservation_id)

        assignment = self.get_assignment(reservation_id)
        if assignment and assignment.posted_dates and assignment.package_id != package_id:
            raise ValueError("套餐已入账，不能更换")

        if not assignment:
            assignment = ReservationPackage(reservation_id=reservation_id, posted_dates=[], consumptions=[])
            self.db.add(assignment)

        assignment.package_id = package_id
        assignment.adults = reservation.adults if adults is None else adults
        assignment.children = reservation.children if children is None else children
        assignment.start_date = start_date or reservation.check_in
        assignment.end_date = end_date or reservation.check_out
        self.db.commit()
        self.db.refresh(assignment)
        logger.info(f"Package {package_id} assigned to reservation {reservation_id}")
        return assignment

    # ---------- 夜审入账 ----------

    def post_package_charges(self, audit_date: date) -> PostingSummary:
        """
        入账营业日的套餐费用

        Raises:
            ReservationLookupFailure: 预订来源整体不可用
        """
        summary = PostingSummary()
        assignments = {a.reservation_id: a for a in self.db.query(ReservationPackage).all()}
        if not assignments:
            return summary

        for reservation in self.reservations.list():
            assignment = assignments.get(reservation.id)
            if not assignment or not self._is_eligible(reservation, assignment, audit_date):
                continue

            detail = {
                "reservation_id": reservation.id,
                "room": reservation.room_label,
                "guest": reservation.guest_name,
                "package_id": assignment.package_id,
            }
            try:
                self._post_for_reservation(reservation, assignment, audit_date, summary, detail)
            except Exception as e:
                self.folios.discard()
                logger.error(f"Package posting failed for reservation {reservation.id}", exc_info=True)
                summary.record_failed(detail, str(e))

        logger.info(
            f"Package posting {audit_date}: posted={summary.posted} "
            f"skipped={summary.skipped} failed={summary.failed}"
        )
        return summary

    @staticmethod
    def _is_eligible(reservation: ReservationView, assignment: ReservationPackage, audit_date: date) -> bool:
        if reservation.status != ReservationStatus.CHECKED_IN or not reservation.is_in_house(audit_date):
            return False
        if assignment.start_date and audit_date < assignment.start_date:
            return False
        if assignment.end_date and audit_date >= assignment.end_date:
            return False
        return True

    def _post_for_reservation(
        self,
        reservation: ReservationView,
        assignment: ReservationPackage,
        audit_date: date,
        summary: PostingSummary,
        detail: Dict[str, Any],
    ) -> None:
        date_key = audit_date.isoformat()
        if date_key in (assignment.posted_dates or []):
            summary.record_skipped(detail, "Package already posted for this date")
            return

        package = self._catalog(assignment.package_id)
        if not package:
            raise PackageDefinitionMissing(assignment.package_id)

        adults = assignment.adults or 0
        children = assignment.children or 0
        folio = self.folios.get_or_create_folio(reservation, audit_date)

        posted_components: List[Dict[str, Any]] = []
        total = ZERO
        with self.folios.locked(folio):
            for component in package.components_for(PostingTime.NIGHT_AUDIT):
                reference_id = package_reference(reservation.id, audit_date, component.id)
                if self.folios.find_by_reference(reference_id):
                    continue

                charge = component_charge(component, adults, children)
                if charge["gross"] <= 0:
                    continue

                self.folios.append_transaction(
                    folio,
                    type=TransactionType.CHARGE,
                    category=component.category,
                    description=f"{package.name} - {component.name} ({adults}A/{children}C)",
                    debit=charge["gross"],
                    business_date=audit_date,
                    posted_by=settings.NIGHT_AUDIT_OPERATOR,
                    reference_id=reference_id,
                    night_audit_date=audit_date,
                    tax_details=[{
                        "tax_type": "VAT",
                        "rate": str(component.tax_rate),
                        "amount": str(charge["tax"]),
                        "base": str(charge["net"]),
                    }],
                )
                total += charge["gross"]
                posted_components.append({
                    "component_id": component.id,
                    "component": component.name,
                    "amount": charge["gross"],
                })

            # 流水与 posted_dates 在同一次提交中保存
            assignment.posted_dates = sorted(set(assignment.posted_dates or []) | {date_key})
            self.folios.save(folio)

        # 无组件可入账的套餐（如 RO）同样记为已入账，金额为 0
        summary.record_posted(
            {**detail, "package": package.name, "folio_number": folio.folio_number,
             "components": posted_components},
            total,
        )

    # ---------- 消费时入账 ----------

    def record_consumption(
        self,
        reservation_id: int,
        component_id: str,
        quantity: int = 1,
        business_date: Optional[date] = None,
        posted_by: Optional[str] = None,
    ):
        """
        记录按消费入账的组件（如全包套餐的水疗）

        Raises:
            PackageDefinitionMissing: 套餐不存在
            ReservationLookupFailure: 预订不存在
            ValueError: 未分配套餐、组件不可按消费入账、超过每日上限
        """
        if quantity < 1:
            raise ValueError("数量必须大于 0")

        assignment = self.get_assignment(reservation_id)
        if not assignment:
            raise ValueError("预订未分配套餐")

        package = self._catalog(assignment.package_id)
        if not package:
            raise PackageDefinitionMissing(assignment.package_id)

        component = package.get_component(component_id)
        rule = package.get_rule(component_id)
        if not component or not rule or rule.posting_time != PostingTime.CONSUMPTION:
            raise ValueError(f"组件 {component_id} 不能按消费入账")

        business_date = business_date or date.today()
        date_key = business_date.isoformat()
        consumptions = list(assignment.consumptions or [])
        used = sum(
            c["quantity"] for c in consumptions
            if c["component_id"] == component_id and c["date"] == date_key
        )
        if component.max_quantity is not None and used + quantity > component.max_quantity:
            raise ValueError(f"{component.name} 每日最多 {component.max_quantity} 次")

        reservation = self.reservations.get(reservation_id)
        if not reservation:
            raise ReservationLookupFailure(f"预订不存在: {reservation_id}", reservation_id)

        net = component.retail_value * quantity
        tax, gross = exclusive_tax(net, component.tax_rate)
        reference_id = f"PKG-CONS-{reservation_id}-{date_key}-{component_id}-{len(consumptions) + 1}"

        folio = self.folios.get_or_create_folio(reservation, business_date)
        with self.folios.locked(folio):
            try:
                transaction = self.folios.append_transaction(
                    folio,
                    type=TransactionType.CHARGE,
                    category=component.category,
                    description=f"{package.name} - {component.name} x{quantity}",
                    debit=gross,
                    business_date=business_date,
                    posted_by=posted_by,
                    reference_id=reference_id,
                    tax_details=[{
                        "tax_type": "VAT",
                        "rate": str(component.tax_rate),
                        "amount": str(tax),
                        "base": str(quantize(to_decimal(net))),
                    }],
                )
                consumptions.append({
                    "component_id": component_id,
                    "date": date_key,
                    "quantity": quantity,
                    "amount": str(gross),
                    "reference_id": reference_id,
                })
                assignment.consumptions = consumptions
            except Exception:
                self.folios.discard()
                raise
            self.folios.save(folio)
        return transaction
