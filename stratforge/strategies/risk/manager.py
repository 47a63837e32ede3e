"""开仓前风控闸门。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from stratforge.common.config.schema import PortfolioConfig
from stratforge.common.models.models import Position, Signal
from stratforge.common.utils.logging import setup_logger


@dataclass(frozen=True)
class RiskDecision:
    allowed: bool
    reason: str | None = None
    trade_risk: float = 0.0
    total_risk: float = 0.0


class RiskGate:
    """风控检查：持仓数上限、单笔风险占比、组合总风险占比。

    Parameters
    ----------
    cfg:
        账本配置（max_positions/max_risk_per_trade/max_total_risk）。
    suppress_warnings:
        是否抑制拒单 warning 日志（参数搜索时常用）。
    """

    def __init__(self, cfg: PortfolioConfig, suppress_warnings: bool = False):
        self.cfg = cfg
        self.suppress_warnings = suppress_warnings
        self.logger = setup_logger("risk")

    def position_risk(self, position: Position) -> float:
        """已有持仓的风险金额：有止损按止损距离，否则按市值 * max_risk_per_trade。"""
        if position.stop_loss is not None:
            return abs(position.current_price - position.stop_loss) * position.quantity
        return position.quantity * position.current_price * self.cfg.max_risk_per_trade

    def signal_risk(self, signal: Signal, quantity: float) -> float:
        price = float(signal.price or 0.0)
        if signal.stop_loss is not None:
            return abs(price - signal.stop_loss) * quantity
        return quantity * price * self.cfg.max_risk_per_trade

    def check(
        self,
        signal: Signal,
        open_positions: Iterable[Position],
        balance: float,
        quantity: float | None = None,
    ) -> RiskDecision:
        """检查一笔待开仓信号。

        Parameters
        ----------
        signal:
            待开仓信号（price 已确定）。
        open_positions:
            当前未平仓持仓。
        balance:
            当前可用余额；<=0 时任何开仓都视为超限。
        quantity:
            已由 PositionSizer 确定的数量；缺省取 `signal.quantity`。

        Returns
        -------
        RiskDecision
            allowed=False 时 reason 为拒单原因。
        """
        positions = [p for p in open_positions if p.is_open]
        if len(positions) >= self.cfg.max_positions:
            return self._reject("max_positions")

        qty = float(quantity if quantity is not None else (signal.quantity or 0.0))
        trade_risk = self.signal_risk(signal, qty)
        if balance <= 0:
            return self._reject("risk_per_trade")
        trade_frac = trade_risk / balance
        if trade_frac > self.cfg.max_risk_per_trade:
            return self._reject("risk_per_trade", trade_frac)

        total_frac = (sum(self.position_risk(p) for p in positions) + trade_risk) / balance
        if total_frac > self.cfg.max_total_risk:
            return self._reject("total_risk", trade_frac, total_frac)

        return RiskDecision(True, None, trade_frac, total_frac)

    def _reject(self, reason: str, trade_frac: float = 0.0, total_frac: float = 0.0) -> RiskDecision:
        if not self.suppress_warnings:
            self.logger.warning(
                "Position rejected: %s (trade_risk=%.4f total_risk=%.4f)", reason, trade_frac, total_frac
            )
        return RiskDecision(False, reason, trade_frac, total_frac)
