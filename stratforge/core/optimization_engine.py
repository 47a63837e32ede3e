"""参数优化引擎（OptimizationEngine）。

把回测当作 fitness 函数，委托 grid / random / genetic / bayesian 之一搜索参数空间。
统一为 Engine 风格入口：`run() -> EngineResult`，`optimize() -> OptimizationResult`。
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from stratforge.common.config.schema import MainConfig
from stratforge.common.errors import ConfigurationError
from stratforge.common.events import EventSink
from stratforge.common.models.models import Candle
from stratforge.common.utils.cancel import StopToken
from stratforge.common.utils.logging import setup_logger
from stratforge.core.base_engine import BaseEngine, EngineResult
from stratforge.core.data import CandleSource
from stratforge.optimization import SEARCH_STRATEGIES
from stratforge.optimization.base import OptimizationResult
from stratforge.optimization.evaluator import BacktestEvaluator
from stratforge.optimization.fitness import FitnessFn
from stratforge.optimization.space import ParameterSpace
from stratforge.strategies.base import StrategyTemplate


class OptimizationEngine(BaseEngine):
    """参数优化引擎。

    Parameters
    ----------
    cfg:
        总配置（`optimizer` 段决定方法、fitness 与各算法参数）。
    strategy:
        策略模板；每次评估都会得到全新实例并 reset 指标。
    data:
        K 线来源（所有评估只读共享）。
    parameter_space:
        `{name: {type, min, max, step | choices}}` 或 `ParameterSpace`。
    method:
        覆盖 `cfg.optimizer.method`。
    fitness:
        覆盖 `cfg.optimizer.fitness_function`；也可以直接传可调用对象。
    stop_token:
        外部取消令牌；`cfg.optimizer.timeout_secs` 会在开始时挂到该令牌上。
    """

    def __init__(
        self,
        cfg: MainConfig | None,
        strategy: StrategyTemplate,
        data: CandleSource | Sequence[Candle],
        parameter_space: Mapping[str, Any] | ParameterSpace,
        *,
        method: str | None = None,
        fitness: str | FitnessFn | None = None,
        event_sink: EventSink | None = None,
        stop_token: StopToken | None = None,
    ):
        super().__init__(event_sink)
        self.cfg = cfg or MainConfig()
        self.method = method or self.cfg.optimizer.method
        if self.method not in SEARCH_STRATEGIES:
            raise ConfigurationError(f"Unknown optimization method: {self.method}")
        self.space = ParameterSpace.from_mapping(parameter_space)
        self.evaluator = BacktestEvaluator(self.cfg, strategy, data, fitness)
        self.stop_token = stop_token or StopToken()
        self.logger = setup_logger("optimize", self.cfg.log_level)
        self.result: OptimizationResult | None = None

    def evaluate(self, parameters: Mapping[str, Any]) -> float:
        """评估单组参数；失败返回 -inf。"""
        return self.evaluator(parameters)

    def stop(self) -> None:
        """请求停止；当前代/批次结束后返回已有最优结果。"""
        self.stop_token.request_stop()
        self.logger.info("Optimization stop requested")

    def optimize(self) -> OptimizationResult:
        self._enter_running()
        opt_cfg = self.cfg.optimizer
        if opt_cfg.timeout_secs:
            self.stop_token.arm_timeout(opt_cfg.timeout_secs)
        search = SEARCH_STRATEGIES[self.method](opt_cfg, stop_token=self.stop_token, event_sink=self.event_sink)

        self.logger.info(
            "Starting %s optimization (%d params, fitness=%s)",
            self.method,
            len(self.space),
            getattr(self.evaluator.fitness_fn, "__name__", "custom"),
        )
        self.emit("optimization_started", {"method": self.method})
        try:
            result = search.optimize(self.space, self.evaluator)
        except Exception as exc:
            self._finish(False, exc)
            self.logger.error("Optimization failed: %s", exc)
            self.emit("optimization_failed", {"method": self.method, "error": str(exc)})
            raise
        self._finish(True)
        self.result = result
        self.logger.info(
            "Optimization completed: best_fitness=%s params=%s%s",
            result.best_fitness,
            result.best_parameters,
            " (stopped)" if result.stopped else "",
        )
        self.emit("optimization_completed", {"method": self.method, "best_fitness": result.best_fitness,
                                             "best_parameters": result.best_parameters, "stopped": result.stopped})
        return result

    def run(self) -> EngineResult:
        result = self.optimize()
        return EngineResult(summary=result.to_dict(), artifacts={"result": result})
