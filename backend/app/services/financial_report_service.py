"""
财务报表服务 - 只读
- 日收入报表：按收入分类、部门汇总当日消费流水，含税反算、已入账税额、付款方式汇总
- 经理报表：入住率、ADR、RevPAR、未结余额
- 月报：逐日汇总
"""
import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.hotel.revenue_categories import (
    Department, PaymentBucket, RevenueCategory,
    category_of, department_of, payment_bucket_of
)
from app.models.ontology import (
    Folio, FolioStatus, FolioTransaction, ReservationStatus, Room, TransactionType
)
from app.services.reservation_source import ReservationSource, SqlReservationSource
from app.services.tax_service import TaxConfigService, TaxRateConfig, breakdown, quantize, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class FinancialReportService:
    """财务报表服务"""

    def __init__(self, db: Session, reservation_source: Optional[ReservationSource] = None):
        self.db = db
        self.reservations = reservation_source or SqlReservationSource(db)

    # ---------- 日报 ----------

    def daily_revenue_report(
        self,
        report_date: date,
        tax_rates: Optional[List[TaxRateConfig]] = None,
    ) -> Dict[str, Any]:
        """
        日收入报表
        只统计当日的消费流水（不含调整流水和非正金额）
        """
        charges = self._charges_on(report_date)

        by_category = {c.value: ZERO for c in RevenueCategory}
        by_department = {d.value: ZERO for d in Department}
        posted_taxes: Dict[str, Decimal] = {}
        for t in charges:
            amount = Decimal(t.debit)
            by_category[category_of(t.category).value] += amount
            by_department[department_of(t.category).value] += amount
            for tax in t.tax_details or []:
                tax_type = tax.get("tax_type") or "OTHER"
                posted_taxes[tax_type] = posted_taxes.get(tax_type, ZERO) + to_decimal(tax.get("amount") or 0)

        total_revenue = sum(by_category.values(), ZERO)
        if tax_rates is None:
            tax_rates = TaxConfigService(self.db).get_rates()
        taxes = breakdown(total_revenue, tax_rates)

        count = len(charges)
        return {
            "date": report_date,
            "revenue": {
                "by_category": by_category,
                "by_department": by_department,
                "total": total_revenue,
            },
            "taxes": taxes.to_dict(),
            "posted_taxes": {**posted_taxes, "total": sum(posted_taxes.values(), ZERO)},
            "payments": self.payment_summary(report_date),
            "statistics": {
                "transaction_count": count,
                "average_transaction": quantize(total_revenue / count) if count else ZERO,
            },
        }

    def payment_summary(self, report_date: date) -> Dict[str, Any]:
        """当日付款按付款方式汇总，未知方式计入 cash"""
        payments = self.db.query(FolioTransaction).filter(
            FolioTransaction.type == TransactionType.PAYMENT,
            FolioTransaction.date == report_date,
        ).all()

        methods = {b.value: ZERO for b in PaymentBucket}
        for p in payments:
            methods[payment_bucket_of(p.payment_method).value] += Decimal(p.credit or 0)

        return {
            "methods": methods,
            "total": sum(methods.values(), ZERO),
            "count": len(payments),
        }

    def _charges_on(self, report_date: date) -> List[FolioTransaction]:
        return self.db.query(FolioTransaction).filter(
            FolioTransaction.type == TransactionType.CHARGE,
            FolioTransaction.date == report_date,
            FolioTransaction.debit > 0,
        ).order_by(FolioTransaction.id).all()

    # ---------- 经理报表 ----------

    def manager_report(self, report_date: date) -> Dict[str, Any]:
        """经理日报"""
        reservations = self.reservations.list()
        # 当前所有在住预订都计入占用（不按入住日期过滤）
        occupied = len([r for r in reservations if r.status == ReservationStatus.CHECKED_IN])
        active_rooms = self.db.query(Room).filter(Room.is_active == True).count()  # noqa: E712
        total_rooms = active_rooms or 1

        revenue = self.daily_revenue_report(report_date)
        room_revenue = revenue["revenue"]["by_category"][RevenueCategory.ROOM.value]
        adr = quantize(room_revenue / occupied) if occupied else ZERO
        revpar = quantize(room_revenue / total_rooms)
        occupancy = (Decimal(occupied) / total_rooms * HUNDRED).quantize(Decimal("0.1"))

        outstanding = sum(
            (Decimal(f.balance) for f in self.db.query(Folio).filter(
                Folio.status == FolioStatus.OPEN, Folio.balance > 0
            ).all()),
            ZERO,
        )

        methods = revenue["payments"]["methods"]
        return {
            "date": report_date,
            "occupancy": {
                "rooms": {
                    "total": active_rooms,
                    "occupied": occupied,
                    "available": max(active_rooms - occupied, 0),
                    "percentage": occupancy,
                },
                "guests": {
                    "in_house": occupied,
                    "arrivals": len([r for r in reservations if r.check_in == report_date]),
                    "departures": len([r for r in reservations if r.check_out == report_date]),
                },
            },
            "revenue": revenue["revenue"],
            "kpis": {
                "adr": adr,
                "revpar": revpar,
                "occupancy_rate": occupancy,
            },
            "financial": {
                "outstanding_balances": outstanding,
                "cash_position": methods[PaymentBucket.CASH.value],
                "credit_card_receipts": methods[PaymentBucket.CARD.value],
            },
        }

    # ---------- 月报 ----------

    def monthly_report(self, year: int, month: int) -> Dict[str, Any]:
        """月报：逐日生成日报后汇总"""
        if not 1 <= month <= 12:
            raise ValueError("月份必须在 1-12 之间")

        tax_rates = TaxConfigService(self.db).get_rates()
        days = calendar.monthrange(year, month)[1]
        daily = [
            self.daily_revenue_report(date(year, month, day), tax_rates)
            for day in range(1, days + 1)
        ]

        by_category = {c.value: ZERO for c in RevenueCategory}
        for report in daily:
            for key, amount in report["revenue"]["by_category"].items():
                by_category[key] += amount

        logger.info(f"Monthly report {year}-{month:02d} generated ({days} days)")
        return {
            "year": year,
            "month": month,
            "total_revenue": sum((r["revenue"]["total"] for r in daily), ZERO),
            "total_payments": sum((r["payments"]["total"] for r in daily), ZERO),
            "total_taxes": sum((r["taxes"]["total_tax"] for r in daily), ZERO),
            "total_posted_taxes": sum((r["posted_taxes"]["total"] for r in daily), ZERO),
            "by_category": by_category,
            "daily_breakdown": daily,
        }
