"""事件出口：引擎通过注入的 sink 发事件，而不是全局订阅表。"""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol


class EventSink(Protocol):
    def emit(self, event: str, payload: dict[str, Any]) -> None: ...


class NullEventSink:
    def emit(self, event: str, payload: dict[str, Any]) -> None:
        return None


class CollectingEventSink:
    """把事件收集到内存列表（测试/前端轮询用）；线程安全。"""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.events.append((event, dict(payload)))

    def of(self, event: str) -> list[dict[str, Any]]:
        with self._lock:
            return [p for e, p in self.events if e == event]


class LoggingEventSink:
    """把事件写到 logger（DEBUG 级别）。"""

    def __init__(self, logger: logging.Logger, level: int = logging.DEBUG):
        self.logger = logger
        self.level = level

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.logger.log(self.level, "event=%s payload=%s", event, payload)
