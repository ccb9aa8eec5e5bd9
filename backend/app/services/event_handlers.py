"""
事件处理器
订阅账务与夜审事件：收款后检查信用额度、记录夜审失败
"""
from typing import Callable
import logging

from app.services.event_bus import event_bus, Event
from app.models.events import EventType
from app.database import SessionLocal

logger = logging.getLogger(__name__)


class EventHandlers:
    """
    事件处理器集合

    支持依赖注入以便于测试：
    - db_session_factory: 数据库会话工厂
    """

    def __init__(self, db_session_factory: Callable = None):
        self._db_session_factory = db_session_factory or SessionLocal
        self._registered = False

    def handle_payment_received(self, event: Event) -> None:
        """收款后账户仍超出信用额度时记录警告"""
        from app.models.ontology import Folio

        folio_id = event.data.get('folio_id')
        if not folio_id:
            logger.warning("Invalid payment event: missing folio_id")
            return

        db = self._db_session_factory()
        try:
            folio = db.query(Folio).filter(Folio.id == folio_id).first()
            if folio and folio.is_over_credit_limit:
                logger.warning(
                    f"Folio {folio.folio_number} balance {folio.balance} "
                    f"exceeds credit limit {folio.credit_limit}"
                )
        finally:
            db.close()

    def handle_folio_closed(self, event: Event) -> None:
        data = event.data
        logger.info(
            f"Folio {data.get('folio_number')} closed by {data.get('closed_by')}: "
            f"{data.get('reason')} (adjustment {data.get('adjustment_amount')})"
        )

    def handle_night_audit_failed(self, event: Event) -> None:
        data = event.data
        logger.error(
            f"Night audit {data.get('audit_date')} failed at {data.get('step')}: {data.get('error')}"
        )

    def register_handlers(self, event_bus_instance=None) -> None:
        """注册所有事件处理器"""
        if self._registered:
            return

        bus = event_bus_instance or event_bus

        bus.subscribe(EventType.PAYMENT_RECEIVED, self.handle_payment_received)
        bus.subscribe(EventType.FOLIO_CLOSED, self.handle_folio_closed)
        bus.subscribe(EventType.NIGHT_AUDIT_FAILED, self.handle_night_audit_failed)

        self._registered = True
        logger.info("Event handlers registered successfully")

    def unregister_handlers(self, event_bus_instance=None) -> None:
        """取消注册所有事件处理器（用于测试）"""
        bus = event_bus_instance or event_bus

        bus.unsubscribe(EventType.PAYMENT_RECEIVED, self.handle_payment_received)
        bus.unsubscribe(EventType.FOLIO_CLOSED, self.handle_folio_closed)
        bus.unsubscribe(EventType.NIGHT_AUDIT_FAILED, self.handle_night_audit_failed)

        self._registered = False
        logger.info("Event handlers unregistered")


# 全局事件处理器实例
event_handlers = EventHandlers()


def register_event_handlers():
    """注册所有事件处理器（应用启动时调用）"""
    event_handlers.register_handlers()
