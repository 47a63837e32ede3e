"""核心数据结构：Candle/Signal/Position/Trade/EquityPoint。"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from stratforge.common.errors import ValidationError


class SignalAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    CLOSE = "close"


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class CloseReason(str, Enum):
    MANUAL = "manual"
    SIGNAL = "signal"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    BACKTEST_END = "backtest_end"


@dataclass(frozen=True)
class Candle:
    """K 线数据（加载后不可变）。"""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    symbol: str = "DEFAULT"


@dataclass
class Signal:
    """策略输出的交易信号。

    `action=close` 时用 `position_id` 指定要平的仓位；缺省则平掉全部持仓。
    `price` 缺省时由回测编排器填入当根 K 线收盘价。
    """
    action: SignalAction
    symbol: str | None = None
    quantity: float | None = None
    price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    position_id: str | None = None
    order_type: OrderType = OrderType.MARKET
    timestamp: datetime | None = None
    strategy: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.action, SignalAction):
            try:
                self.action = SignalAction(str(self.action).lower())
            except ValueError as exc:
                raise ValidationError(f"unknown signal action: {self.action!r}") from exc
        if self.order_type is None:
            self.order_type = OrderType.MARKET
        elif not isinstance(self.order_type, OrderType):
            try:
                self.order_type = OrderType(str(self.order_type).lower())
            except ValueError as exc:
                raise ValidationError(f"unknown order type: {self.order_type!r}") from exc

    @property
    def side(self) -> Side | None:
        if self.action is SignalAction.BUY:
            return Side.BUY
        if self.action is SignalAction.SELL:
            return Side.SELL
        return None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Signal":
        """从 dict 构建信号（兼容 `side` 作为 `action` 的别名）。"""
        return cls(
            action=data.get("action", data.get("side")),
            symbol=data.get("symbol"),
            quantity=data.get("quantity"),
            price=data.get("price"),
            stop_loss=data.get("stop_loss"),
            take_profit=data.get("take_profit"),
            position_id=data.get("position_id"),
            order_type=data.get("order_type"),
            timestamp=data.get("timestamp"),
            strategy=data.get("strategy"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Position:
    """持仓（账本独占；对外只暴露副本）。"""
    id: str
    symbol: str
    side: Side
    quantity: float
    entry_price: float
    current_price: float
    entry_time: datetime
    commission: float = 0.0
    margin_used: float = 0.0
    stop_loss: float | None = None
    take_profit: float | None = None
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0
    status: PositionStatus = PositionStatus.OPEN
    exit_price: float | None = None
    exit_time: datetime | None = None
    strategy: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    @property
    def direction(self) -> int:
        return 1 if self.side is Side.BUY else -1


@dataclass(frozen=True)
class Trade:
    """平仓后生成的成交记录（只追加）。"""
    id: str
    position_id: str
    symbol: str
    side: Side
    quantity: float
    entry_price: float
    exit_price: float
    entry_time: datetime
    exit_time: datetime
    pnl: float
    commission: float
    slippage: float
    duration: float
    close_reason: CloseReason
    strategy: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["side"] = self.side.value
        out["close_reason"] = self.close_reason.value
        return out


@dataclass(frozen=True)
class EquityPoint:
    timestamp: datetime
    equity: float
    balance: float
    unrealized_pnl: float
