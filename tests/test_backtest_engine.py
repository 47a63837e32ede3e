import json
from datetime import datetime

import pandas as pd
import pytest

from stratforge.common.config.schema import MainConfig
from stratforge.common.errors import ConfigurationError
from stratforge.common.events import CollectingEventSink
from stratforge.common.models.models import Candle, CloseReason, Side, Signal, SignalAction
from stratforge.core.backtest_engine import BacktestEngine
from stratforge.core.data import candles_to_frame, load_candles
from stratforge.core.base_engine import EngineState
from stratforge.strategies.simple_ma import SimpleMAStrategy


def _cfg(**overrides) -> MainConfig:
    base = {"execution": {"enabled": False}, "portfolio": {"slippage": 0.0}}
    base.update(overrides)
    return MainConfig(**base)


class NeverTrade:
    def on_candle(self, context):
        return None


class BuyOnce:
    def __init__(self, quantity=1.0):
        self.quantity = quantity

    def on_candle(self, context):
        if context.index == 0:
            return Signal(action=SignalAction.BUY, quantity=self.quantity)
        return None


class Exploding:
    def on_candle(self, context):
        if context.index % 2 == 0:
            raise ZeroDivisionError("boom")
        return None


class DictSignals:
    def on_candle(self, context):
        if context.index == 0:
            return {"action": "buy", "quantity": 1}
        if context.index == 2:
            return {"action": "close"}
        return None


def test_strategy_without_signals_keeps_equity(make_candles):
    engine = BacktestEngine(_cfg(), NeverTrade(), make_candles([100, 101, 99, 102]))
    result = engine.run()
    portfolio = result.summary["portfolio"]
    assert portfolio["equity"] == 10000.0
    assert portfolio["total_trades"] == 0
    assert result.artifacts["trades"] == []
    assert engine.state is EngineState.COMPLETED


def test_flat_price_trade_costs_exactly_commissions(make_candles):
    engine = BacktestEngine(_cfg(), BuyOnce(), make_candles([100] * 100))
    result = engine.run()
    trades = result.artifacts["trades"]
    assert len(trades) == 1
    trade = trades[0]
    assert trade.close_reason is CloseReason.BACKTEST_END
    assert abs(trade.pnl - (-(0.1 + 0.1))) < 1e-9
    assert all(abs(p.unrealized_pnl) < 1e-12 for p in result.artifacts["equity_history"])
    assert abs(result.summary["portfolio"]["equity"] - (10000 - 0.2)) < 1e-9


def test_invalid_ohlc_rejected_before_run(make_candles):
    bad = make_candles([100, 101])
    bad.append(Candle(timestamp=datetime(2024, 2, 1), open=100, high=99, low=98, close=100, symbol="BTCUSDT"))
    with pytest.raises(ConfigurationError):
        BacktestEngine(_cfg(), NeverTrade(), bad)


def test_unsorted_data_is_replayed_in_time_order(make_candles):
    seen = []

    class Recorder:
        def on_candle(self, context):
            seen.append(context.candle.timestamp)

    candles = make_candles([100, 101, 102, 103])
    BacktestEngine(_cfg(), Recorder(), list(reversed(candles))).run()
    assert seen == sorted(seen)


def test_dataframe_input(make_candles):
    candles = make_candles([100, 101, 102])
    frame = pd.DataFrame(
        {
            "timestamp": [c.timestamp for c in candles],
            "open": [c.open for c in candles],
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [c.volume for c in candles],
        }
    )
    engine = BacktestEngine(_cfg(), NeverTrade(), frame)
    assert len(engine.candles) == 3
    assert engine.candles[0].symbol == engine.cfg.backtest.default_symbol


def test_strategy_errors_are_treated_as_no_signal(make_candles):
    engine = BacktestEngine(_cfg(), Exploding(), make_candles([100, 101, 102, 103, 104]))
    result = engine.run()
    assert result.summary["strategy_errors"] == 3
    assert result.summary["portfolio"]["total_trades"] == 0
    assert engine.state is EngineState.COMPLETED


def test_dict_signals_and_close_without_position_id(make_candles):
    result = BacktestEngine(_cfg(), DictSignals(), make_candles([100, 105, 110, 120])).run()
    trades = result.artifacts["trades"]
    assert len(trades) == 1
    assert trades[0].close_reason is CloseReason.SIGNAL
    assert trades[0].exit_price == 110.0


def test_simple_ma_cross_round_trip(make_candles):
    strategy = SimpleMAStrategy(short_window=2, long_window=3, quantity=1)
    result = BacktestEngine(_cfg(), strategy, make_candles([10, 10, 10, 11, 12, 13, 12, 11, 10, 9])).run()
    trades = result.artifacts["trades"]
    assert len(trades) == 1
    assert trades[0].entry_price == 11.0
    assert trades[0].exit_price == 11.0
    assert trades[0].close_reason is CloseReason.SIGNAL
    assert trades[0].strategy == "simple_ma"


def test_execution_simulator_moves_entry_price(make_candles):
    cfg = MainConfig(execution={"enabled": True, "spread": 0.0, "slippage": 0.001, "market_impact": 0.0})
    result = BacktestEngine(cfg, BuyOnce(), make_candles([100, 100, 100])).run()
    trade = result.artifacts["trades"][0]
    assert abs(trade.entry_price - 100.1) < 1e-9


def test_engine_cannot_run_twice(make_candles):
    engine = BacktestEngine(_cfg(), NeverTrade(), make_candles([100, 101]))
    engine.run()
    with pytest.raises(RuntimeError):
        engine.run()


def test_missing_data_or_strategy(make_candles):
    with pytest.raises(ConfigurationError):
        BacktestEngine(_cfg(), NeverTrade()).run()
    with pytest.raises(ConfigurationError):
        BacktestEngine(_cfg(), None, make_candles([100])).run()


def test_events_are_emitted(make_candles):
    sink = CollectingEventSink()
    BacktestEngine(_cfg(), BuyOnce(), make_candles([100] * 5), event_sink=sink).run()
    names = [e for e, _ in sink.events]
    assert names[0] == "backtest_started"
    assert names[-1] == "backtest_completed"
    assert len(sink.of("position_opened")) == 1
    assert len(sink.of("position_closed")) == 1
    assert sink.of("progress")[0]["processed"] == 1


def test_report_and_export(make_candles, tmp_path):
    engine = BacktestEngine(_cfg(portfolio={"slippage": 0.0, "commission": 0.0}), BuyOnce(), make_candles(range(100, 111)))
    engine.run()
    report = engine.generate_report()
    assert set(report) == {"summary", "performance", "risk", "trades", "charts"}
    assert report["summary"]["total_trades"] == 1
    assert report["performance"]["consecutive_wins"] == 1
    assert report["trades"]["by_strategy"].keys() == {"default"}
    assert len(report["charts"]["equity_curve"]) == len(engine.results.artifacts["equity_history"])

    out = engine.export_results(tmp_path / "out" / "result.json")
    doc = json.loads(out.read_text(encoding="utf-8"))
    assert doc["performance"]["profit_factor"] == "inf"
    assert doc["trades"][0]["close_reason"] == "backtest_end"
    assert set(doc) >= {"portfolio", "trades", "performance", "report"}


def test_report_without_trades(make_candles):
    engine = BacktestEngine(_cfg(), NeverTrade(), make_candles([100, 101]))
    engine.run()
    assert engine.generate_report()["performance"] == {"message": "No trades executed"}


def test_mode_dispatch_walk_forward(make_candles):
    cfg = _cfg(backtest={"mode": "walk_forward"}, walk_forward={"periods": 2, "optimization_ratio": 0.5})
    engine = BacktestEngine(cfg, BuyOnce, make_candles([100 + i for i in range(20)]))
    result = engine.run()
    assert result.summary["type"] == "walk_forward"
    assert len(result.summary["periods"]) == 2
    assert engine.state is EngineState.COMPLETED


class BuyOnceWithPlainAction:
    def on_candle(self, context):
        if context.index == 0:
            return Signal(action="buy", quantity=1)
        return None


def test_signal_with_string_action_opens_position(make_candles):
    result = BacktestEngine(_cfg(), BuyOnceWithPlainAction(), make_candles([100] * 5)).run()
    trades = result.artifacts["trades"]
    assert len(trades) == 1
    assert trades[0].side is Side.BUY


def test_epoch_timestamps_in_candles_are_normalized():
    candles = [
        Candle(timestamp=1_700_000_000 + 86400 * i, open=100, high=101, low=99, close=100, symbol="BTCUSDT")
        for i in range(5)
    ]
    engine = BacktestEngine(_cfg(), BuyOnce(), candles)
    engine.run()
    assert isinstance(engine.candles[0].timestamp, datetime)
    report = engine.generate_report()
    assert "2023-11" in report["trades"]["by_month"]


def test_candles_to_frame_round_trip(make_candles):
    candles = make_candles([100, 101, 102, 103])
    frame = candles_to_frame(candles)
    assert frame.index.name == "timestamp"
    assert len(frame) == 4
    assert list(frame.columns) == ["open", "high", "low", "close", "volume", "symbol"]
    assert load_candles(frame) == candles
