"""成交价调整模型：点差、滑点、冲击成本。买单抬高、卖单压低。"""

from __future__ import annotations

from abc import ABC, abstractmethod

from stratforge.common.models.models import Side


class PriceAdjustment(ABC):
    @abstractmethod
    def apply(self, *, price: float, side: Side) -> float:
        raise NotImplementedError


class _RateAdjustment(PriceAdjustment):
    def __init__(self, rate: float = 0.0):
        self.rate = float(rate)

    def apply(self, *, price: float, side: Side) -> float:
        if self.rate == 0.0:
            return float(price)
        delta = float(price) * self.rate
        return float(price) + delta if side is Side.BUY else float(price) - delta


class SpreadModel(_RateAdjustment):
    """半点差：买在 ask、卖在 bid。"""

    def __init__(self, spread: float = 0.0):
        super().__init__(float(spread) / 2.0)


class RateSlippageModel(_RateAdjustment):
    """按比例滑点（`price * rate`）。"""


class MarketImpactModel(_RateAdjustment):
    """按比例冲击成本（`price * rate`）。"""
