from datetime import datetime, timedelta

from stratforge.common.config.schema import ExecutionConfig
from stratforge.common.models.models import Candle, Side, Signal, SignalAction
from stratforge.execution.simulator import ExecutionSimulator
from stratforge.execution.slippage_models import MarketImpactModel, RateSlippageModel, SpreadModel

TS = datetime(2024, 1, 1)


def _candle(low=95.0, high=105.0):
    return Candle(timestamp=TS, open=100.0, high=high, low=low, close=100.0, symbol="BTC")


def test_adjustments_move_against_the_trader():
    assert abs(SpreadModel(0.0002).apply(price=100.0, side=Side.BUY) - 100.01) < 1e-9
    assert abs(SpreadModel(0.0002).apply(price=100.0, side=Side.SELL) - 99.99) < 1e-9
    assert RateSlippageModel(0.001).apply(price=100.0, side=Side.BUY) > 100.0
    assert MarketImpactModel(0.001).apply(price=100.0, side=Side.SELL) < 100.0


def test_buy_fill_applies_spread_slippage_and_impact_in_order():
    sim = ExecutionSimulator(ExecutionConfig(spread=0.0002, slippage=0.0005, market_impact=0.0001))
    sig = Signal(action=SignalAction.BUY, symbol="BTC", quantity=1, price=100.0)
    fill = sim.execute_signal(sig, _candle())
    expected = 100.0 * (1 + 0.0001) * (1 + 0.0005) * (1 + 0.0001)
    assert abs(fill.signal.price - expected) < 1e-9
    assert abs(fill.slippage - (expected - 100.0)) < 1e-9
    assert fill.original_price == 100.0
    assert sig.price == 100.0


def test_sell_fill_is_lower_and_clamped_to_candle_range():
    sim = ExecutionSimulator(ExecutionConfig(spread=0.02, slippage=0.05, market_impact=0.0))
    sig = Signal(action=SignalAction.SELL, symbol="BTC", quantity=1, price=100.0)
    fill = sim.execute_signal(sig, _candle(low=97.0))
    assert fill.signal.price == 97.0


def test_buy_fill_clamped_to_high():
    sim = ExecutionSimulator(ExecutionConfig(spread=0.0, slippage=0.01, market_impact=0.0))
    sig = Signal(action=SignalAction.BUY, symbol="BTC", quantity=1, price=100.0)
    assert sim.execute_signal(sig, _candle(high=100.5)).signal.price == 100.5


def test_latency_shifts_effective_time():
    sim = ExecutionSimulator(ExecutionConfig(latency_ms=250))
    fill = sim.execute_signal(Signal(action=SignalAction.BUY, symbol="BTC", price=100.0), _candle())
    assert fill.effective_time == TS + timedelta(milliseconds=250)


def test_close_signal_without_side_is_unchanged():
    sim = ExecutionSimulator(ExecutionConfig())
    fill = sim.execute_signal(Signal(action=SignalAction.CLOSE, symbol="BTC"), _candle())
    assert fill.signal.price == 100.0
    assert fill.slippage == 0.0
    explicit = sim.execute_signal(Signal(action=SignalAction.CLOSE, symbol="BTC"), _candle(), Side.SELL)
    assert explicit.signal.price < 100.0
