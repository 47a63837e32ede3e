"""执行引擎基类（模板模式）。

所有引擎统一出口 `run() -> EngineResult`，并显式维护生命周期：
Idle -> Running -> {Completed, Failed}，进入终态后不可再运行。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from stratforge.common.events import (
    CollectingEventSink,
    EventSink,
    LoggingEventSink,
    NullEventSink,
)


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class EngineResult:
    """引擎运行结果（统一出口）。"""

    summary: dict[str, Any]
    artifacts: dict[str, Any] | None = None


class BaseEngine(ABC):
    """引擎抽象基类。"""

    def __init__(self, event_sink: EventSink | None = None):
        self.event_sink: EventSink = event_sink or NullEventSink()
        self.state = EngineState.IDLE
        self.error: BaseException | None = None

    def _enter_running(self) -> None:
        if self.state is not EngineState.IDLE:
            raise RuntimeError(f"engine already {self.state.value}; create a new instance to run again")
        self.state = EngineState.RUNNING

    def _finish(self, ok: bool, error: BaseException | None = None) -> None:
        self.state = EngineState.COMPLETED if ok else EngineState.FAILED
        self.error = error

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.event_sink.emit(event, payload)

    @abstractmethod
    def run(self) -> EngineResult:
        raise NotImplementedError


__all__ = [
    "BaseEngine",
    "CollectingEventSink",
    "EngineResult",
    "EngineState",
    "EventSink",
    "LoggingEventSink",
    "NullEventSink",
]
