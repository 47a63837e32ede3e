"""策略抽象与上下文。

回测编排器每根 K 线调用一次策略：
- 优先 `on_candle(context)`；
- 否则回退 `update(candle)`（流式指标风格的策略）。
返回 `Signal`、等价 dict 或 None。
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Mapping, Protocol, Union

from stratforge.common.models.models import Candle, Position, Signal


class Resettable(Protocol):
    def reset(self) -> None: ...


class HistoryView(Sequence):
    """只读历史视图：`candles[:end]`，不复制底层序列。"""

    def __init__(self, candles: Sequence[Candle], end: int):
        self._candles = candles
        self._end = max(0, min(end, len(candles)))

    def __len__(self) -> int:
        return self._end

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return [self._candles[i] for i in range(*idx.indices(self._end))]
        if idx < 0:
            idx += self._end
        if not 0 <= idx < self._end:
            raise IndexError("history index out of range")
        return self._candles[idx]

    def closes(self, last: int | None = None) -> list[float]:
        start = 0 if last is None else max(0, self._end - last)
        return [self._candles[i].close for i in range(start, self._end)]


@dataclass(frozen=True)
class StrategyContext:
    """单步上下文。

    Attributes
    ----------
    candle:
        当前 K 线。
    index:
        当前 K 线下标。
    history:
        截至当前（含）的历史。
    portfolio:
        账本摘要快照（balance/equity/...）。
    positions:
        当前未平仓持仓副本。
    """
    candle: Candle
    index: int
    history: HistoryView
    portfolio: Mapping[str, Any]
    positions: list[Position] = field(default_factory=list)


SignalLike = Union[Signal, Mapping[str, Any], None]


class Strategy(ABC):
    """策略基类。

    子类通过 `default_params` 声明可优化参数及默认值；`indicators` 中的对象在
    `reset()` 时被逐个重置，保证同一策略在多次评估之间不串状态。
    """

    name: ClassVar[str] = "base"
    default_params: ClassVar[dict[str, Any]] = {}

    def __init__(self, **params: Any):
        self.indicators: dict[str, Resettable] = {}
        merged = {**self.default_params, **params}
        for key, value in merged.items():
            setattr(self, key, value)

    @property
    def params(self) -> dict[str, Any]:
        return {k: getattr(self, k) for k in self.default_params}

    def set_parameters(self, params: Mapping[str, Any]) -> None:
        for key, value in params.items():
            setattr(self, key, value)
        self.reset()

    def reset(self) -> None:
        for indicator in self.indicators.values():
            indicator.reset()

    @abstractmethod
    def on_candle(self, context: StrategyContext) -> SignalLike:
        raise NotImplementedError


StrategyTemplate = Union[type, Callable[[], Any], Any]


def instantiate_strategy(template: StrategyTemplate, params: Mapping[str, Any] | None = None) -> Any:
    """从模板得到一个全新的策略实例并绑定参数。

    模板可以是策略类、无参工厂函数或现成实例（会被深拷贝，原实例不受影响）。
    """
    if isinstance(template, type):
        strategy = template()
    elif callable(template) and not hasattr(template, "on_candle") and not hasattr(template, "update"):
        strategy = template()
    else:
        strategy = copy.deepcopy(template)

    if params:
        setter = getattr(strategy, "set_parameters", None)
        if callable(setter):
            setter(dict(params))
        else:
            for key, value in params.items():
                setattr(strategy, key, value)
    reset_strategy(strategy)
    return strategy


def reset_strategy(strategy: Any) -> None:
    """调用策略的 reset()；没有的话逐个重置其 indicators。"""
    reset = getattr(strategy, "reset", None)
    if callable(reset):
        reset()
        return
    indicators = getattr(strategy, "indicators", None)
    if isinstance(indicators, Mapping):
        for indicator in indicators.values():
            indicator.reset()


def default_parameters(strategy: Any) -> dict[str, Any]:
    """策略的基准参数：实例取当前参数，类/工厂取 `default_params`。"""
    if not isinstance(strategy, type):
        current = getattr(strategy, "params", None)
        if isinstance(current, Mapping):
            return dict(current)
    params = getattr(strategy, "default_params", None)
    return dict(params) if isinstance(params, Mapping) else {}
