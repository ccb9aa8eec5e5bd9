"""
事件总线 - 内存级发布/订阅
服务通过发布事件通知账户关闭、夜审完成等结果，订阅方异常相互隔离
"""
from typing import Callable, Dict, List, Any
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """事件"""
    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str  # 触发来源（服务名）
    event_id: str = field(default_factory=lambda: datetime.now().strftime("%Y%m%d%H%M%S%f"))


class EventBus:
    """
    内存级事件总线（线程安全）

    使用方式：
    1. 订阅事件：event_bus.subscribe("folio.closed", handler_func)
    2. 发布事件：event_bus.publish(Event(...))
    """

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self._event_history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        """订阅事件（同一处理器只登记一次）"""
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.debug(f"Handler {handler.__name__} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        """取消订阅"""
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> int:
        """
        同步发布事件

        Returns:
            成功处理的处理器数量
        """
        self._event_history.append(event)
        with self._lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        handled = 0
        for handler in handlers:
            try:
                handler(event)
                handled += 1
            except Exception:
                logger.error(
                    f"Event handler {handler.__name__} failed for {event.event_type}",
                    exc_info=True,
                )
        return handled

    def get_history(self, event_type: str = None, limit: int = 50) -> List[Event]:
        """获取事件历史（最新在前）"""
        history = list(self._event_history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def clear(self) -> None:
        """清空订阅与历史（用于测试）"""
        with self._lock:
            self._subscribers.clear()
        self._event_history.clear()


# 全局事件总线实例
event_bus = EventBus()
