"""仓位计算。"""

from __future__ import annotations

import math
from typing import Protocol

from stratforge.common.config.schema import PortfolioConfig
from stratforge.common.models.models import Signal


class Sizer(Protocol):
    """Sizer：把信号换算成具体下单数量。"""

    def size(self, signal: Signal, balance: float) -> float: ...


class PositionSizer:
    """固定风险比例仓位。

    - 信号显式给出 quantity：直接使用；
    - 给出止损：`floor(balance * max_risk_per_trade / |price - stop_loss|)`；
    - 否则：`floor(balance * max_risk_per_trade / price)`。
    """

    def __init__(self, cfg: PortfolioConfig):
        self.cfg = cfg

    def size(self, signal: Signal, balance: float) -> float:
        if signal.quantity:
            return float(signal.quantity)
        price = float(signal.price or 0.0)
        budget = balance * self.cfg.max_risk_per_trade
        if signal.stop_loss is not None:
            per_unit = abs(price - signal.stop_loss)
            return float(math.floor(budget / per_unit)) if per_unit > 0 else 0.0
        return float(math.floor(budget / price)) if price > 0 else 0.0
