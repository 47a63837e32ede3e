"""Fitness 评估器：参数 -> 全新策略实例 -> 一次标准回测 -> fitness。

每次评估都有独占的 BacktestEngine/PortfolioLedger；K 线序列只读共享。
任何评估异常都会被捕获并记为 -inf，搜索继续。
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

from stratforge.common.config.schema import MainConfig
from stratforge.common.errors import OptimizationEvaluationError
from stratforge.common.models.models import Candle
from stratforge.common.utils.logging import setup_logger
from stratforge.core.backtest_engine import BacktestEngine
from stratforge.core.data import CandleSource, load_candles
from stratforge.optimization.fitness import FitnessFn, resolve_fitness
from stratforge.strategies.base import StrategyTemplate, instantiate_strategy


class BacktestEvaluator:
    """可调用对象：`evaluator(params) -> float`，线程安全（无共享可变状态）。"""

    def __init__(
        self,
        cfg: MainConfig | None,
        strategy: StrategyTemplate,
        data: CandleSource | Sequence[Candle],
        fitness: str | FitnessFn | None = None,
    ):
        self.cfg = cfg or MainConfig()
        self.strategy = strategy
        self.candles = load_candles(data, default_symbol=self.cfg.backtest.default_symbol)
        self.fitness_fn = resolve_fitness(fitness or self.cfg.optimizer.fitness_function)
        self.logger = setup_logger("optimize", self.cfg.log_level)

    def _backtest(self, parameters: Mapping[str, Any]):
        engine = BacktestEngine(self.cfg, instantiate_strategy(self.strategy, parameters), quiet=True)
        # 已在构造时校验并排序，直接共享只读序列
        engine.candles = self.candles
        return engine.run_standard()

    def __call__(self, parameters: Mapping[str, Any]) -> float:
        try:
            result = self._backtest(parameters)
            value = float(self.fitness_fn(result, self.cfg.backtest))
        except Exception as exc:
            err = OptimizationEvaluationError(dict(parameters), exc)
            self.logger.error("%s", err)
            return -math.inf
        return -math.inf if math.isnan(value) else value


def evaluate(
    strategy: StrategyTemplate,
    market_data: CandleSource | Sequence[Candle],
    parameters: Mapping[str, Any],
    cfg: MainConfig | None = None,
    fitness: str | FitnessFn | None = None,
) -> float:
    """单次评估的函数式入口。"""
    return BacktestEvaluator(cfg, strategy, market_data, fitness)(parameters)
