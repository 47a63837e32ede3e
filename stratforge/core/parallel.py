"""有界工作池：结果按原始下标回填，与完成顺序无关。"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def map_ordered(fn: Callable[[T], R], items: Sequence[T], workers: int = 1) -> list[R]:
    """对 items 逐个调用 fn；workers > 1 时用线程池并发，返回顺序与输入一致。

    任务内抛出的异常会在这里原样抛出（调用方负责把可恢复错误包进 fn）。
    """
    if workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as pool:
        return list(pool.map(fn, items))
