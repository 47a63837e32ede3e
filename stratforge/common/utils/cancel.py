"""协作式取消。

引擎只在“代/网格单元/窗口/蒙特卡洛轮次”之间轮询 `should_stop()`，
从不在单次回测中途打断；超时等价于到期时自动触发的 stop。
"""

from __future__ import annotations

import threading
import time


class StopToken:
    def __init__(self, timeout_secs: float | None = None):
        self._event = threading.Event()
        self._deadline: float | None = None
        if timeout_secs:
            self.arm_timeout(timeout_secs)

    def arm_timeout(self, timeout_secs: float) -> None:
        """从现在起 timeout_secs 秒后视为已请求停止。"""
        self._deadline = time.monotonic() + float(timeout_secs)

    def request_stop(self) -> None:
        self._event.set()

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def should_stop(self) -> bool:
        return self._event.is_set() or self.timed_out
