from stratforge.core.backtest_engine import BacktestEngine
from stratforge.core.base_engine import BaseEngine, EngineResult, EngineState
from stratforge.core.data import candles_to_frame, load_candles

__all__ = ["BacktestEngine", "BaseEngine", "EngineResult", "EngineState", "candles_to_frame", "load_candles"]
