from stratforge.strategies.base import HistoryView, Strategy, StrategyContext, instantiate_strategy
from stratforge.strategies.registry import build_strategy, get_strategy_cls, register_strategy
from stratforge.strategies.simple_ma import MovingAverage, SimpleMAStrategy

__all__ = [
    "HistoryView",
    "MovingAverage",
    "SimpleMAStrategy",
    "Strategy",
    "StrategyContext",
    "build_strategy",
    "get_strategy_cls",
    "instantiate_strategy",
    "register_strategy",
]
