"""简单均线交叉策略。

核心逻辑：短周期均线上穿长周期均线时买入（金叉），下穿时平掉多头（死叉）。
只做多；用于示例、配置驱动的回测和测试。
"""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Mapping

from stratforge.common.models.models import Signal, SignalAction
from stratforge.strategies.base import Strategy, StrategyContext


class MovingAverage:
    """流式简单移动平均（可 reset）。"""

    def __init__(self, window: int):
        self.window = int(window)
        self.values: Deque[float] = deque(maxlen=self.window)

    def update(self, value: float) -> float | None:
        self.values.append(float(value))
        if len(self.values) < self.window:
            return None
        return sum(self.values) / self.window

    def reset(self) -> None:
        self.values.clear()


class SimpleMAStrategy(Strategy):
    """简单移动均线交叉策略。

    Parameters
    ----------
    short_window:
        短期均线窗口。
    long_window:
        长期均线窗口。
    quantity:
        每次下单数量；None 时交给 PositionSizer 按风险比例定量。
    stop_loss_pct / take_profit_pct:
        相对入场价的止损/止盈比例；None 表示不设。
    """

    name = "simple_ma"
    default_params = {
        "short_window": 5,
        "long_window": 20,
        "quantity": None,
        "stop_loss_pct": None,
        "take_profit_pct": None,
    }

    def __init__(self, **params: Any):
        super().__init__(**params)
        self.last_signal: str | None = None
        self._build_indicators()

    def _build_indicators(self) -> None:
        self.indicators = {
            "ma_short": MovingAverage(int(self.short_window)),
            "ma_long": MovingAverage(int(self.long_window)),
        }

    def set_parameters(self, params: Mapping[str, Any]) -> None:
        for key, value in params.items():
            setattr(self, key, value)
        self._build_indicators()
        self.reset()

    def reset(self) -> None:
        super().reset()
        self.last_signal = None

    def on_candle(self, context: StrategyContext) -> Signal | None:
        candle = context.candle
        short_ma = self.indicators["ma_short"].update(candle.close)
        long_ma = self.indicators["ma_long"].update(candle.close)
        if short_ma is None or long_ma is None:
            return None

        # 仅在信号翻转时动作，避免均线保持多头排列时重复开仓
        if short_ma > long_ma and self.last_signal != "long":
            self.last_signal = "long"
            price = candle.close
            return Signal(
                action=SignalAction.BUY,
                symbol=candle.symbol,
                quantity=self.quantity,
                price=price,
                stop_loss=price * (1 - self.stop_loss_pct) if self.stop_loss_pct else None,
                take_profit=price * (1 + self.take_profit_pct) if self.take_profit_pct else None,
                strategy=self.name,
            )
        if short_ma < long_ma and self.last_signal == "long":
            self.last_signal = "flat"
            longs = [p for p in context.positions if p.symbol == candle.symbol]
            if not longs:
                return None
            return Signal(
                action=SignalAction.CLOSE,
                symbol=candle.symbol,
                price=candle.close,
                position_id=longs[0].id,
                strategy=self.name,
            )
        return None
