"""
账户服务 - 住店账务台账
- 流水只追加，余额 = 上一余额 + debit - credit，快照写在流水上
- 关闭账户前自动生成调整流水把余额归零，关闭后不可再入账
- 同一账户的写操作通过账户级锁串行化
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.events import (
    EventType, FolioCreatedData, FolioClosedData, PaymentReceivedData
)
from app.models.ontology import Folio, FolioStatus, FolioTransaction, TransactionType
from app.services.errors import FolioClosedError, FolioNotFoundError, FolioPersistenceFailure
from app.services.event_bus import event_bus, Event
from app.services.reservation_source import ReservationView
from app.services.tax_service import quantize, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class _FolioLocks:
    """账户级可重入锁；记录每个线程的持有深度以识别最外层加锁，无人持有时移除锁"""

    def __init__(self):
        self._locks: Dict[int, threading.RLock] = {}
        self._users: Dict[int, int] = {}
        self._guard = threading.Lock()
        self._depth = threading.local()

    def _acquire_entry(self, key: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _release_entry(self, key: int) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: int) -> Iterator[bool]:
        """持有锁，yield 是否为最外层"""
        lock = self._acquire_entry(key)
        try:
            with lock:
                depths = getattr(self._depth, "value", None)
                if depths is None:
                    depths = self._depth.value = {}
                depths[key] = depths.get(key, 0) + 1
                try:
                    yield depths[key] == 1
                finally:
                    depths[key] -= 1
                    if depths[key] == 0:
                        del depths[key]
        finally:
            self._release_entry(key)


folio_locks = _FolioLocks()


def build_folio_number(open_date: date, room_label: str, reservation_id: int) -> str:
    """账户号：F<YYMMDD>-<房号>-<预订ID>"""
    return f"F{open_date.strftime('%y%m%d')}-{room_label}-{reservation_id}"


class FolioService:
    """账户服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], Any] = None):
        self.db = db
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._pending_events: List[Event] = []

    # ---------- 查询 ----------

    def get_folio(self, folio_id: int) -> Optional[Folio]:
        return self.db.query(Folio).filter(Folio.id == folio_id).first()

    def get_folio_or_raise(self, folio_id: int) -> Folio:
        folio = self.get_folio(folio_id)
        if not folio:
            raise FolioNotFoundError(folio_id)
        return folio

    def get_folio_by_reservation(self, reservation_id: int) -> Optional[Folio]:
        return self.db.query(Folio).filter(
            Folio.reservation_id == reservation_id
        ).order_by(Folio.id.desc()).first()

    def list_folios(self, status: Optional[FolioStatus] = None) -> List[Folio]:
        query = self.db.query(Folio)
        if status:
            query = query.filter(Folio.status == status)
        return query.order_by(Folio.id).all()

    def find_by_reference(self, reference_id: str) -> Optional[FolioTransaction]:
        return self.db.query(FolioTransaction).filter(
            FolioTransaction.reference_id == reference_id
        ).first()

    # ---------- 创建 ----------

    def get_or_create_folio(
        self,
        reservation: ReservationView,
        business_date: Optional[date] = None,
        credit_limit: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
    ) -> Folio:
        """
        获取预订的账户，不存在则创建（不提交，随本次入账一起保存）
        """
        folio = self.get_folio_by_reservation(reservation.id)
        if folio:
            return folio

        open_date = business_date or date.today()
        folio = Folio(
            folio_number=build_folio_number(open_date, reservation.room_label, reservation.id),
            reservation_id=reservation.id,
            guest_name=reservation.guest_name,
            room_number=reservation.room_number,
            balance=ZERO,
            credit_limit=credit_limit if credit_limit is not None else settings.DEFAULT_CREDIT_LIMIT,
            payment_method=payment_method or reservation.payment_method or settings.DEFAULT_PAYMENT_METHOD,
            status=FolioStatus.OPEN,
            open_date=open_date,
        )
        self.db.add(folio)
        self._flush(folio)
        logger.info(f"Folio {folio.folio_number} created for reservation {reservation.id}")

        self._pending_events.append(Event(
            event_type=EventType.FOLIO_CREATED,
            timestamp=datetime.now(),
            data=FolioCreatedData(
                folio_id=folio.id,
                folio_number=folio.folio_number,
                reservation_id=reservation.id,
                guest_name=reservation.guest_name,
                room_number=reservation.room_number or "",
            ).to_dict(),
            source="folio_service",
        ))
        return folio

    # ---------- 入账 ----------

    @contextmanager
    def locked(self, folio: Folio) -> Iterator[Folio]:
        """
        串行化同一账户的写操作
        最外层加锁时从数据库刷新余额，避免基于过期余额计算
        """
        key = folio.id if folio.id is not None else id(folio)
        with folio_locks.hold(key) as outermost:
            state = sa_inspect(folio)
            if outermost and state.persistent and not self.db.is_modified(folio):
                self.db.refresh(folio)
            yield folio

    def append_transaction(
        self,
        folio: Folio,
        *,
        type: TransactionType,
        category: str,
        description: str,
        debit: Any = ZERO,
        credit: Any = ZERO,
        business_date: Optional[date] = None,
        posted_by: Optional[str] = None,
        reference_id: Optional[str] = None,
        night_audit_date: Optional[date] = None,
        tax_details: Optional[List[Dict[str, Any]]] = None,
        payment_method: Optional[str] = None,
    ) -> FolioTransaction:
        """
        追加一条流水（不提交）

        Raises:
            FolioClosedError: 账户已关闭
            ValueError: 借贷金额为负
        """
        debit = quantize(to_decimal(debit))
        credit = quantize(to_decimal(credit))
        if debit < 0 or credit < 0:
            raise ValueError("借方和贷方金额不能为负")

        with self.locked(folio):
            if folio.status == FolioStatus.CLOSED:
                raise FolioClosedError(folio.folio_number)

            now = datetime.now()
            prior_balance = Decimal(folio.balance or 0)
            new_balance = prior_balance + debit - credit

            transaction = FolioTransaction(
                date=business_date or now.date(),
                time=now.strftime("%H:%M:%S"),
                type=type,
                category=category,
                description=description,
                debit=debit,
                credit=credit,
                balance=new_balance,
                posted_by=posted_by or settings.NIGHT_AUDIT_OPERATOR,
                posted_at=now,
                reference_id=reference_id,
                night_audit_date=night_audit_date,
                tax_details=tax_details,
                payment_method=payment_method,
            )
            folio.transactions.append(transaction)
            folio.balance = new_balance
            self._flush(folio)
            return transaction

    def save(self, folio: Folio) -> None:
        """
        提交本次写入，并发布积累的事件

        Raises:
            FolioPersistenceFailure: 提交失败（已回滚）
        """
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self._pending_events.clear()
            logger.error(f"Folio {folio.id} persistence failed", exc_info=True)
            raise FolioPersistenceFailure(folio.id, e) from e

        events, self._pending_events = self._pending_events, []
        for event in events:
            self._publish_event(event)

    def discard(self) -> None:
        """放弃未提交的写入"""
        self.db.rollback()
        self._pending_events.clear()

    def post(self, folio: Folio, **fields: Any) -> FolioTransaction:
        """追加一条流水并立即保存"""
        with self.locked(folio):
            try:
                transaction = self.append_transaction(folio, **fields)
            except Exception:
                self.discard()
                raise
            self.save(folio)
        return transaction

    def post_charge(
        self,
        folio_id: int,
        amount: Any,
        category: str,
        description: str,
        posted_by: str,
        business_date: Optional[date] = None,
        reference_id: Optional[str] = None,
        tax_details: Optional[List[Dict[str, Any]]] = None,
    ) -> FolioTransaction:
        """手工入账消费"""
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValueError("消费金额必须大于 0")
        if reference_id and self.find_by_reference(reference_id):
            raise ValueError(f"参考号 {reference_id} 已入账")

        folio = self.get_folio_or_raise(folio_id)
        return self.post(
            folio,
            type=TransactionType.CHARGE,
            category=category,
            description=description,
            debit=amount,
            business_date=business_date,
            posted_by=posted_by,
            reference_id=reference_id,
            tax_details=tax_details,
        )

    def post_payment(
        self,
        folio_id: int,
        amount: Any,
        method: str,
        posted_by: str,
        business_date: Optional[date] = None,
        reference_id: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> FolioTransaction:
        """收款（贷方）"""
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValueError("付款金额必须大于 0")

        folio = self.get_folio_or_raise(folio_id)
        method = (method or settings.DEFAULT_PAYMENT_METHOD).lower()
        description = f"Payment ({method})" + (f" - {remark}" if remark else "")
        transaction = self.post(
            folio,
            type=TransactionType.PAYMENT,
            category="payment",
            description=description,
            credit=amount,
            business_date=business_date,
            posted_by=posted_by,
            reference_id=reference_id,
            payment_method=method,
        )

        self._publish_event(Event(
            event_type=EventType.PAYMENT_RECEIVED,
            timestamp=datetime.now(),
            data=PaymentReceivedData(
                folio_id=folio.id,
                transaction_id=transaction.id,
                amount=float(amount),
                method=method,
                posted_by=posted_by,
            ).to_dict(),
            source="folio_service",
        ))
        return transaction

    # ---------- 关闭 ----------

    def close(
        self,
        folio: Folio,
        reason: str,
        closed_by: Optional[str] = None,
        business_date: Optional[date] = None,
    ) -> Folio:
        """
        关闭账户
        余额不为 0 时先追加调整流水：正余额记贷方，负余额记借方，使余额恰好为 0

        Raises:
            FolioClosedError: 账户已关闭
        """
        closed_by = closed_by or settings.NIGHT_AUDIT_OPERATOR
        close_date = business_date or date.today()

        with self.locked(folio):
            if folio.status == FolioStatus.CLOSED:
                raise FolioClosedError(folio.folio_number)

            outstanding = Decimal(folio.balance or 0)
            try:
                if outstanding != 0:
                    self.append_transaction(
                        folio,
                        type=TransactionType.ADJUSTMENT,
                        category="adjustment",
                        description=f"Closing adjustment - {reason}",
                        debit=-outstanding if outstanding < 0 else ZERO,
                        credit=outstanding if outstanding > 0 else ZERO,
                        business_date=close_date,
                        posted_by=closed_by,
                    )
                folio.status = FolioStatus.CLOSED
                folio.closed_date = close_date
                folio.closed_by = closed_by
                folio.close_reason = reason
                self._flush(folio)
            except Exception:
                self.discard()
                raise
            self.save(folio)

        logger.info(f"Folio {folio.folio_number} closed: {reason} (adjustment {outstanding})")
        self._publish_event(Event(
            event_type=EventType.FOLIO_CLOSED,
            timestamp=datetime.now(),
            data=FolioClosedData(
                folio_id=folio.id,
                folio_number=folio.folio_number,
                reservation_id=folio.reservation_id,
                reason=reason,
                adjustment_amount=float(outstanding),
                closed_by=closed_by,
            ).to_dict(),
            source="folio_service",
        ))
        return folio

    # ---------- 对账与账单 ----------

    @staticmethod
    def recalculate_balance(folio: Folio) -> Decimal:
        """按流水重新计算余额：Σdebit - Σcredit"""
        return sum(
            (Decimal(t.debit or 0) - Decimal(t.credit or 0) for t in folio.transactions),
            ZERO,
        )

    def verify_balance(self, folio: Folio) -> bool:
        """存储余额与流水是否一致"""
        return self.recalculate_balance(folio) == Decimal(folio.balance or 0)

    def statement(self, folio_id: int) -> dict:
        """账单（只读投影）"""
        folio = self.get_folio_or_raise(folio_id)

        lines = []
        total_charges = ZERO
        total_payments = ZERO
        for t in folio.transactions:
            debit = Decimal(t.debit or 0)
            credit = Decimal(t.credit or 0)
            total_charges += debit
            total_payments += credit
            lines.append({
                "date": t.date,
                "time": t.time,
                "description": t.description,
                "type": t.type.value,
                "category": t.category,
                "charges": debit,
                "payments": credit,
                "balance": Decimal(t.balance),
                "reference_id": t.reference_id,
            })

        return {
            "header": {
                "folio_id": folio.id,
                "folio_number": folio.folio_number,
                "reservation_id": folio.reservation_id,
                "guest_name": folio.guest_name,
                "room_number": folio.room_number,
                "status": folio.status.value,
                "open_date": folio.open_date,
                "closed_date": folio.closed_date,
                "close_reason": folio.close_reason,
            },
            "transactions": lines,
            "summary": {
                "total_charges": total_charges,
                "total_payments": total_payments,
                "balance": Decimal(folio.balance or 0),
            },
        }

    def _flush(self, folio: Folio) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            self._pending_events.clear()
            logger.error(f"Folio {folio.id} flush failed", exc_info=True)
            raise FolioPersistenceFailure(folio.id, e) from e
