import pytest

from stratforge.common.errors import ConfigurationError
from stratforge.strategies.base import HistoryView, default_parameters, instantiate_strategy
from stratforge.strategies.registry import build_strategy, get_strategy_cls
from stratforge.strategies.simple_ma import MovingAverage, SimpleMAStrategy


def test_moving_average_warmup_and_reset():
    ma = MovingAverage(3)
    assert ma.update(1) is None
    assert ma.update(2) is None
    assert ma.update(3) == 2.0
    assert ma.update(6) == 11 / 3
    ma.reset()
    assert ma.update(10) is None


def test_history_view_is_bounded(make_candles):
    candles = make_candles([1, 2, 3, 4, 5])
    view = HistoryView(candles, 3)
    assert len(view) == 3
    assert view[-1].close == 3.0
    assert [c.close for c in view[1:]] == [2.0, 3.0]
    assert view.closes(2) == [2.0, 3.0]
    with pytest.raises(IndexError):
        view[3]


def test_build_strategy_filters_unknown_keys():
    strategy = build_strategy({"type": "simple_ma", "short_window": 3, "params": {"long_window": 9}, "colour": "red"})
    assert isinstance(strategy, SimpleMAStrategy)
    assert strategy.params["short_window"] == 3
    assert strategy.params["long_window"] == 9
    assert not hasattr(strategy, "colour")


def test_unknown_strategy():
    with pytest.raises(ConfigurationError):
        get_strategy_cls("does_not_exist")


def test_instantiate_strategy_copies_and_resets_instances():
    template = SimpleMAStrategy(short_window=2, long_window=3)
    template.indicators["ma_short"].update(5.0)
    fresh = instantiate_strategy(template, {"short_window": 4})
    assert fresh is not template
    assert fresh.short_window == 4
    assert template.short_window == 2
    assert len(fresh.indicators["ma_short"].values) == 0
    assert fresh.indicators["ma_short"].window == 4
    assert len(template.indicators["ma_short"].values) == 1


def test_instantiate_strategy_from_class_and_factory():
    from_cls = instantiate_strategy(SimpleMAStrategy, {"long_window": 30})
    assert from_cls.long_window == 30
    from_factory = instantiate_strategy(lambda: SimpleMAStrategy(short_window=7))
    assert from_factory.short_window == 7


def test_default_parameters_prefer_instance_values():
    assert default_parameters(SimpleMAStrategy)["short_window"] == 5
    assert default_parameters(SimpleMAStrategy(short_window=8))["short_window"] == 8
    assert default_parameters(object()) == {}
