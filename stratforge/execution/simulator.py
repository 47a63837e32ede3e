"""撮合模拟器：把信号意图价格转换为更真实的成交价。"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from stratforge.common.config.schema import ExecutionConfig
from stratforge.common.models.models import Candle, Side, Signal
from stratforge.common.utils.logging import setup_logger
from stratforge.execution.slippage_models import (
    MarketImpactModel,
    PriceAdjustment,
    RateSlippageModel,
    SpreadModel,
)


@dataclass(frozen=True)
class Fill:
    """执行结果。

    Attributes
    ----------
    signal:
        价格已调整的信号副本。
    original_price:
        调整前的意图价格。
    slippage:
        `|adjusted - original|`。
    effective_time:
        考虑延迟后成交生效的时间。
    """
    signal: Signal
    original_price: float
    slippage: float
    effective_time: datetime | None


class ExecutionSimulator:
    """确定性撮合：点差 -> 滑点 -> 冲击成本，最后夹到 [low, high]。

    延迟只体现为 `effective_time` 的偏移，不引入随机性，也不会真正 sleep。
    """

    def __init__(self, cfg: ExecutionConfig | None = None, models: list[PriceAdjustment] | None = None):
        self.cfg = cfg or ExecutionConfig()
        self.models: list[PriceAdjustment] = models if models is not None else [
            SpreadModel(self.cfg.spread),
            RateSlippageModel(self.cfg.slippage),
            MarketImpactModel(self.cfg.market_impact),
        ]
        self.logger = setup_logger("execution")

    def execution_price(self, price: float, side: Side, candle: Candle) -> float:
        px = float(price)
        for model in self.models:
            px = model.apply(price=px, side=side)
        return max(candle.low, min(candle.high, px))

    def execute_signal(self, signal: Signal, candle: Candle, side: Side | None = None) -> Fill:
        """对信号做真实撮合调整。

        Parameters
        ----------
        signal:
            原始信号；price 缺省时按 candle.close。
        candle:
            当前 K 线（用于价格夹逼与生效时间）。
        side:
            成交方向；缺省取信号方向。平仓信号需由调用方给出（多头平仓为 sell）。
        """
        original = float(signal.price if signal.price is not None else candle.close)
        direction = side if side is not None else signal.side
        adjusted = original if direction is None else self.execution_price(original, direction, candle)
        effective = None
        if isinstance(candle.timestamp, datetime):
            effective = candle.timestamp + timedelta(milliseconds=self.cfg.latency_ms)
        self.logger.debug(
            "Fill %s %s: %.6f -> %.6f", signal.symbol, getattr(direction, "value", "-"), original, adjusted
        )
        return Fill(
            signal=replace(signal, price=adjusted),
            original_price=original,
            slippage=abs(adjusted - original),
            effective_time=effective,
        )
