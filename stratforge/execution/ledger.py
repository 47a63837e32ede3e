"""组合账本（PortfolioLedger）：余额、持仓、成交记录与权益曲线。

账务口径：
- 开仓扣减 `qty * price * margin_requirement + 开仓手续费`；
- 平仓 `pnl = 毛盈亏 - 开仓手续费 - 平仓手续费 - 滑点`，返还占用资金与开仓手续费后再加 pnl，
  因此一笔交易对余额的净影响恰好等于 pnl。这里有意不采用“平仓时 balance += 持仓价值 + pnl”的
  写法：pnl 已扣除开仓手续费，再按持仓价值返还会把这笔手续费重复计入；
- 每次变动后 `equity == balance + Σ unrealized_pnl(open)`。

所有业务层失败（风控拒单、余额不足、仓位不存在）都以 `LedgerResult(success=False)` 返回，
不会抛异常打断回测。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from stratforge.common.config.schema import PortfolioConfig
from stratforge.common.errors import ValidationError
from stratforge.common.events import EventSink, NullEventSink
from stratforge.common.models.models import (
    CloseReason,
    EquityPoint,
    Position,
    PositionStatus,
    Side,
    Signal,
    Trade,
)
from stratforge.common.utils.logging import setup_logger
from stratforge.strategies.risk.manager import RiskGate
from stratforge.strategies.sizing.base import PositionSizer, Sizer


class RejectReason(str, Enum):
    INVALID_SIGNAL = "invalid_signal"
    MAX_POSITIONS = "max_positions"
    RISK_PER_TRADE = "risk_per_trade"
    TOTAL_RISK = "total_risk"
    INVALID_SIZE = "invalid_size"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    POSITION_NOT_FOUND = "position_not_found"
    POSITION_CLOSED = "position_closed"


@dataclass(frozen=True)
class LedgerResult:
    success: bool
    reason: RejectReason | None = None
    message: str | None = None
    position: Position | None = None
    trade: Trade | None = None


def _elapsed_seconds(start: Any, end: Any) -> float:
    if isinstance(start, datetime) and isinstance(end, datetime):
        return (end - start).total_seconds()
    try:
        return float(end) - float(start)
    except (TypeError, ValueError):
        return 0.0


class PortfolioLedger:
    """单次回测独占的账本。

    Parameters
    ----------
    cfg:
        账本配置；缺省使用默认值。
    risk_gate / sizer:
        可注入的风控与仓位组件；缺省按 cfg 构建。
    event_sink:
        `position_opened` / `position_closed` 事件出口。
    start_time:
        初始权益点的时间戳（回测时传第一根 K 线时间）。
    """

    def __init__(
        self,
        cfg: PortfolioConfig | None = None,
        *,
        risk_gate: RiskGate | None = None,
        sizer: Sizer | None = None,
        event_sink: EventSink | None = None,
        start_time: datetime | None = None,
    ):
        self.cfg = cfg or PortfolioConfig()
        self.risk_gate = risk_gate or RiskGate(self.cfg, suppress_warnings=self.cfg.quiet_risk_logs)
        self.sizer = sizer or PositionSizer(self.cfg)
        self.event_sink = event_sink or NullEventSink()
        self.logger = setup_logger("ledger")

        self.balance = float(self.cfg.initial_balance)
        self.equity = float(self.cfg.initial_balance)
        self._positions: dict[str, Position] = {}
        self._trades: list[Trade] = []
        self._pos_seq = 0
        self._trade_seq = 0
        self._clock: datetime | None = start_time

        self.winning_trades = 0
        self.losing_trades = 0
        self.total_profit = 0.0
        self.total_loss = 0.0
        self.peak_equity = self.equity
        self.max_drawdown = 0.0
        self.max_drawdown_percent = 0.0
        self.monthly_returns: dict[str, float] = {}
        self._equity_history: list[EquityPoint] = [
            EquityPoint(self._now(), self.equity, self.balance, 0.0)
        ]

    # ------------------------------------------------------------------ helpers
    def _now(self, timestamp: datetime | None = None) -> datetime:
        if timestamp is not None:
            self._clock = timestamp
        return self._clock if self._clock is not None else datetime.now()

    def _next_position_id(self) -> str:
        self._pos_seq += 1
        return f"pos_{self._pos_seq:06d}"

    def _next_trade_id(self) -> str:
        self._trade_seq += 1
        return f"trade_{self._trade_seq:06d}"

    @staticmethod
    def _pnl(position: Position, price: float) -> float:
        return (price - position.entry_price) * position.quantity * position.direction

    @staticmethod
    def validate_signal(signal: Signal) -> None:
        """校验开仓信号必填字段：symbol、side（buy/sell）、price > 0。"""
        if not signal.symbol:
            raise ValidationError("Missing required field: symbol")
        if signal.side is None:
            raise ValidationError(f"Invalid side: must be buy or sell, got {signal.action}")
        if signal.price is None:
            raise ValidationError("Missing required field: price")
        price = float(signal.price)
        if not math.isfinite(price) or price <= 0:
            raise ValidationError(f"Invalid price: must be positive, got {signal.price}")

    # ------------------------------------------------------------------ queries
    @property
    def unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self._positions.values() if p.is_open)

    @property
    def equity_history(self) -> list[EquityPoint]:
        return list(self._equity_history)

    def get_open_positions(self) -> list[Position]:
        return [replace(p) for p in self._positions.values() if p.is_open]

    def get_position(self, position_id: str) -> Position | None:
        pos = self._positions.get(position_id)
        return replace(pos) if pos is not None else None

    def get_trades(self, limit: int | None = None) -> list[Trade]:
        """按平仓时间倒序返回成交记录。"""
        ordered = sorted(
            enumerate(self._trades),
            key=lambda it: (it[1].exit_time, it[0]),
            reverse=True,
        )
        trades = [t for _, t in ordered]
        return trades[:limit] if limit else trades

    @property
    def trades(self) -> list[Trade]:
        """按发生顺序返回成交记录。"""
        return list(self._trades)

    # ------------------------------------------------------------------ mutations
    def open_position(self, signal: Signal, timestamp: datetime | None = None) -> LedgerResult:
        """按信号开仓：校验 -> 定量 -> 风控 -> 资金检查 -> 扣款入账。"""
        try:
            self.validate_signal(signal)
        except ValidationError as exc:
            self.logger.warning("Signal rejected: %s", exc)
            return LedgerResult(False, RejectReason.INVALID_SIGNAL, str(exc))

        now = self._now(timestamp or signal.timestamp)
        price = float(signal.price)  # type: ignore[arg-type]
        qty = self.sizer.size(signal, self.balance)
        if not math.isfinite(qty) or qty <= 0:
            return LedgerResult(False, RejectReason.INVALID_SIZE, f"invalid position size: {qty}")

        decision = self.risk_gate.check(signal, self._positions.values(), self.balance, qty)
        if not decision.allowed:
            return LedgerResult(False, RejectReason(decision.reason), decision.reason)

        commission = qty * price * self.cfg.commission
        margin = qty * price * self.cfg.margin_requirement
        total_cost = margin + commission
        if total_cost > self.balance:
            if not self.cfg.quiet_risk_logs:
                self.logger.warning(
                    "Position rejected: insufficient balance (cost=%.4f balance=%.4f)", total_cost, self.balance
                )
            return LedgerResult(False, RejectReason.INSUFFICIENT_BALANCE, "insufficient balance")

        self.balance -= total_cost
        position = Position(
            id=self._next_position_id(),
            symbol=str(signal.symbol),
            side=signal.side,  # type: ignore[arg-type]
            quantity=qty,
            entry_price=price,
            current_price=price,
            entry_time=now,
            commission=commission,
            margin_used=margin,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            strategy=signal.strategy,
        )
        self._positions[position.id] = position
        self.update_equity(now)

        self.logger.debug(
            "Position opened: %s %s %s @ %s", position.symbol, position.side.value, qty, price
        )
        snapshot = replace(position)
        self.event_sink.emit("position_opened", {"position": snapshot})
        return LedgerResult(True, position=snapshot)

    def close_position(
        self,
        position_id: str,
        price: float | None = None,
        reason: CloseReason = CloseReason.MANUAL,
        timestamp: datetime | None = None,
    ) -> LedgerResult:
        """平仓并写入 Trade。price 缺省时按持仓当前价平仓。"""
        position = self._positions.get(position_id)
        if position is None:
            return LedgerResult(False, RejectReason.POSITION_NOT_FOUND, f"position not found: {position_id}")
        if not position.is_open:
            return LedgerResult(False, RejectReason.POSITION_CLOSED, f"position already closed: {position_id}")

        now = self._now(timestamp)
        exit_price = float(price) if price is not None and price > 0 else position.current_price
        gross = self._pnl(position, exit_price)
        exit_commission = position.quantity * exit_price * self.cfg.commission
        slippage = position.quantity * exit_price * self.cfg.slippage
        pnl = gross - position.commission - exit_commission - slippage

        self.balance += position.margin_used + position.commission + pnl

        position.current_price = exit_price
        position.unrealized_pnl = 0.0
        position.realized_pnl = pnl
        position.status = PositionStatus.CLOSED
        position.exit_price = exit_price
        position.exit_time = now

        trade = Trade(
            id=self._next_trade_id(),
            position_id=position.id,
            symbol=position.symbol,
            side=position.side,
            quantity=position.quantity,
            entry_price=position.entry_price,
            exit_price=exit_price,
            entry_time=position.entry_time,
            exit_time=now,
            pnl=pnl,
            commission=position.commission + exit_commission,
            slippage=slippage,
            duration=_elapsed_seconds(position.entry_time, now),
            close_reason=CloseReason(reason),
            strategy=position.strategy,
        )
        self._trades.append(trade)
        self._record_trade(trade)
        self.update_equity(now)

        self.logger.debug("Position closed: %s %s pnl=%.4f (%s)", position.symbol, position.id, pnl, trade.close_reason.value)
        snapshot = replace(position)
        self.event_sink.emit("position_closed", {"position": snapshot, "trade": trade})
        return LedgerResult(True, position=snapshot, trade=trade)

    def close_all(
        self,
        price: float | Mapping[str, float] | None = None,
        reason: CloseReason = CloseReason.MANUAL,
        timestamp: datetime | None = None,
    ) -> list[LedgerResult]:
        """平掉全部未平仓持仓；price 可以是统一价或 symbol -> price 映射。"""
        results = []
        for pos_id in [p.id for p in self._positions.values() if p.is_open]:
            pos = self._positions[pos_id]
            px = price.get(pos.symbol) if isinstance(price, Mapping) else price
            results.append(self.close_position(pos_id, px, reason, timestamp))
        return results

    def update_position_prices(
        self, prices: Mapping[str, float], timestamp: datetime | None = None
    ) -> list[LedgerResult]:
        """按最新价格刷新浮动盈亏，再检查止损/止盈触发。

        Returns
        -------
        list[LedgerResult]
            被触发平仓的结果（按持仓开仓顺序）。
        """
        now = self._now(timestamp)
        touched: list[Position] = []
        for pos in self._positions.values():
            if pos.is_open and pos.symbol in prices:
                pos.current_price = float(prices[pos.symbol])
                pos.unrealized_pnl = self._pnl(pos, pos.current_price)
                touched.append(pos)

        closed: list[LedgerResult] = []
        for pos in touched:
            reason = self._trigger_reason(pos)
            if reason is not None:
                closed.append(self.close_position(pos.id, pos.current_price, reason, now))

        if touched:
            self.update_equity(now)
        return closed

    @staticmethod
    def _trigger_reason(pos: Position) -> CloseReason | None:
        px = pos.current_price
        if pos.stop_loss is not None:
            hit = px <= pos.stop_loss if pos.side is Side.BUY else px >= pos.stop_loss
            if hit:
                return CloseReason.STOP_LOSS
        if pos.take_profit is not None:
            hit = px >= pos.take_profit if pos.side is Side.BUY else px <= pos.take_profit
            if hit:
                return CloseReason.TAKE_PROFIT
        return None

    def update_stop_loss(self, position_id: str, stop_loss: float | None) -> LedgerResult:
        return self._update_level(position_id, "stop_loss", stop_loss)

    def update_take_profit(self, position_id: str, take_profit: float | None) -> LedgerResult:
        return self._update_level(position_id, "take_profit", take_profit)

    def _update_level(self, position_id: str, field_name: str, value: float | None) -> LedgerResult:
        pos = self._positions.get(position_id)
        if pos is None:
            return LedgerResult(False, RejectReason.POSITION_NOT_FOUND, f"position not found: {position_id}")
        if not pos.is_open:
            return LedgerResult(False, RejectReason.POSITION_CLOSED, f"position already closed: {position_id}")
        old = getattr(pos, field_name)
        setattr(pos, field_name, value)
        self.logger.debug("%s updated for %s: %s -> %s", field_name, pos.id, old, value)
        return LedgerResult(True, position=replace(pos))

    def update_equity(self, timestamp: datetime | None = None) -> EquityPoint:
        """重算权益并追加权益点；同一时间戳只保留最新一点（初始点除外）。"""
        now = self._now(timestamp)
        unrealized = self.unrealized_pnl
        self.equity = self.balance + unrealized
        point = EquityPoint(now, self.equity, self.balance, unrealized)
        if len(self._equity_history) > 1 and self._equity_history[-1].timestamp == now:
            self._equity_history[-1] = point
        else:
            self._equity_history.append(point)

        if self.equity > self.peak_equity:
            self.peak_equity = self.equity
        drawdown = self.peak_equity - self.equity
        drawdown_pct = drawdown / self.peak_equity * 100 if self.peak_equity > 0 else 0.0
        self.max_drawdown = max(self.max_drawdown, drawdown)
        self.max_drawdown_percent = max(self.max_drawdown_percent, drawdown_pct)
        return point

    def _record_trade(self, trade: Trade) -> None:
        if trade.pnl > 0:
            self.winning_trades += 1
            self.total_profit += trade.pnl
        elif trade.pnl < 0:
            self.losing_trades += 1
            self.total_loss += abs(trade.pnl)
        if isinstance(trade.exit_time, datetime):
            month = trade.exit_time.strftime("%Y-%m")
            self.monthly_returns[month] = self.monthly_returns.get(month, 0.0) + trade.pnl

    # ------------------------------------------------------------------ reports
    def get_performance_metrics(self) -> dict[str, Any]:
        total_trades = len(self._trades)
        if self.total_loss > 0:
            profit_factor = self.total_profit / self.total_loss
        else:
            profit_factor = math.inf if self.total_profit > 0 else 0.0
        initial = float(self.cfg.initial_balance)
        return {
            "total_trades": total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "total_profit": self.total_profit,
            "total_loss": self.total_loss,
            "win_rate": self.winning_trades / total_trades * 100 if total_trades else 0.0,
            "profit_factor": profit_factor,
            "roi": (self.equity - initial) / initial * 100,
            "average_win": self.total_profit / self.winning_trades if self.winning_trades else 0.0,
            "average_loss": self.total_loss / self.losing_trades if self.losing_trades else 0.0,
            "peak_equity": self.peak_equity,
            "max_drawdown": self.max_drawdown,
            "max_drawdown_percent": self.max_drawdown_percent,
            "monthly_returns": dict(self.monthly_returns),
            "equity_history": self.equity_history,
        }

    def get_portfolio_summary(self) -> dict[str, Any]:
        unrealized = self.unrealized_pnl
        realized = sum(t.pnl for t in self._trades)
        return {
            "balance": self.balance,
            "equity": self.equity,
            "initial_balance": float(self.cfg.initial_balance),
            "total_unrealized_pnl": unrealized,
            "total_realized_pnl": realized,
            "total_pnl": realized + unrealized,
            "open_positions": sum(1 for p in self._positions.values() if p.is_open),
            "total_positions": len(self._positions),
            "total_trades": len(self._trades),
        }
