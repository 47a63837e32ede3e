import json
import logging
import math
import time
from datetime import datetime

import numpy as np
import pytest

from stratforge.common.errors import ConfigurationError, StrategyRuntimeError, StratForgeError, ValidationError
from stratforge.common.events import CollectingEventSink, LoggingEventSink
from stratforge.common.models.models import OrderType, Side, Signal, SignalAction
from stratforge.common.utils.cancel import StopToken
from stratforge.common.utils.json_sanitize import sanitize_for_json
from stratforge.common.utils.logging import resolve_level, setup_logger
from stratforge.core.parallel import map_ordered


def test_setup_logger_does_not_duplicate_handlers():
    logger = setup_logger("stratforge-test", "DEBUG")
    setup_logger("stratforge-test", "DEBUG")
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
    assert logger.propagate is False


def test_resolve_level_from_env(monkeypatch):
    monkeypatch.setenv("STRATFORGE_LOG_LEVEL", "warning")
    assert resolve_level(None) == logging.WARNING
    assert resolve_level("bogus") == logging.INFO
    assert resolve_level(10) == 10


def test_sanitize_for_json():
    doc = {
        "pf": math.inf,
        "neg": -math.inf,
        "nan": float("nan"),
        "side": Side.BUY,
        "ts": datetime(2024, 1, 2, 3, 4),
        "np": np.float64(1.5),
        "items": (1, 2),
    }
    out = sanitize_for_json(doc)
    assert out == {
        "pf": "inf",
        "neg": "-inf",
        "nan": "nan",
        "side": "buy",
        "ts": "2024-01-02T03:04:00",
        "np": 1.5,
        "items": [1, 2],
    }
    json.dumps(out, allow_nan=False)


def test_signal_from_mapping_accepts_side_alias():
    sig = Signal.from_mapping({"side": "sell", "symbol": "BTC", "quantity": 2, "price": 10})
    assert sig.action is SignalAction.SELL
    assert sig.side is Side.SELL
    assert Signal(action=SignalAction.CLOSE).side is None


def test_error_hierarchy():
    assert issubclass(ConfigurationError, StratForgeError)
    assert issubclass(ConfigurationError, ValueError)
    err = StrategyRuntimeError(4, KeyError("x"))
    assert err.index == 4 and "candle 4" in str(err)


def test_collecting_sink_filters_by_event():
    sink = CollectingEventSink()
    sink.emit("a", {"n": 1})
    sink.emit("b", {"n": 2})
    sink.emit("a", {"n": 3})
    assert [p["n"] for p in sink.of("a")] == [1, 3]


def test_stop_token_timeout():
    token = StopToken()
    assert not token.should_stop()
    token.arm_timeout(0.01)
    time.sleep(0.02)
    assert token.timed_out and token.should_stop()
    manual = StopToken()
    manual.request_stop()
    assert manual.should_stop()


def test_map_ordered_preserves_input_order():
    def slow_square(x):
        time.sleep(0.001 * (5 - x))
        return x * x

    assert map_ordered(slow_square, [0, 1, 2, 3, 4], workers=4) == [0, 1, 4, 9, 16]
    assert map_ordered(slow_square, [], workers=4) == []


def test_setup_logger_concurrent_first_calls_attach_one_handler():
    name = "stratforge-concurrent"
    map_ordered(lambda _: setup_logger(name, "INFO"), list(range(16)), workers=8)
    assert len(logging.getLogger(name).handlers) == 1


def test_signal_coerces_plain_strings():
    assert Signal(action="BUY").action is SignalAction.BUY
    assert Signal(action="buy").side is Side.BUY
    assert Signal(action="buy").order_type is OrderType.MARKET
    assert Signal(action="buy", order_type="limit").order_type is OrderType.LIMIT
    with pytest.raises(ValidationError):
        Signal(action="hold")
    with pytest.raises(ValidationError):
        Signal(action="buy", order_type="iceberg")


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_logging_event_sink_writes_event_name():
    logger = logging.getLogger("stratforge-events-test")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = _ListHandler()
    logger.addHandler(handler)
    try:
        LoggingEventSink(logger).emit("backtest_completed", {"trades": 3})
    finally:
        logger.removeHandler(handler)
    assert len(handler.records) == 1
    assert handler.records[0].levelno == logging.DEBUG
    assert "backtest_completed" in handler.records[0].getMessage()
    assert "'trades': 3" in handler.records[0].getMessage()
