"""Walk-forward 分析引擎。

把排好序的数据切成 `periods` 个等长连续窗口，每个窗口前 `optimization_ratio` 部分用于
确定参数（默认取策略默认参数，或委托 OptimizationEngine），剩余部分做样本外回测。
窗口之间相互独立，可并发；结果始终按窗口下标汇总。
"""

from __future__ import annotations

from dataclasses import dataclass
from statistics import mean
from typing import Any, Callable, Mapping, Sequence

from stratforge.common.config.schema import MainConfig
from stratforge.common.errors import ConfigurationError
from stratforge.common.events import EventSink
from stratforge.common.models.models import Candle
from stratforge.common.utils.cancel import StopToken
from stratforge.common.utils.logging import setup_logger
from stratforge.core.backtest_engine import BacktestEngine
from stratforge.core.base_engine import BaseEngine, EngineResult
from stratforge.core.data import CandleSource, load_candles
from stratforge.core.parallel import map_ordered
from stratforge.strategies.base import default_parameters, instantiate_strategy

ParamProvider = Callable[[Any, Sequence[Candle]], Mapping[str, Any]]


def default_param_provider(strategy: Any, optimization_data: Sequence[Candle]) -> dict[str, Any]:
    """不做优化：直接使用策略声明的默认参数。"""
    return default_parameters(strategy)


class OptimizerParamProvider:
    """在优化切片上跑一次 OptimizationEngine，取最优参数。"""

    def __init__(self, cfg: MainConfig, parameter_space: Mapping[str, Any], method: str | None = None):
        self.cfg = cfg
        self.parameter_space = parameter_space
        self.method = method

    def __call__(self, strategy: Any, optimization_data: Sequence[Candle]) -> dict[str, Any]:
        from stratforge.core.optimization_engine import OptimizationEngine

        if not optimization_data:
            return default_parameters(strategy)
        engine = OptimizationEngine(self.cfg, strategy, optimization_data, self.parameter_space, method=self.method)
        result = engine.optimize()
        return {**default_parameters(strategy), **result.best_parameters}


@dataclass(frozen=True)
class Window:
    index: int
    start: int
    optimization_end: int
    test_end: int


def split_windows(n: int, periods: int, optimization_ratio: float) -> list[Window]:
    """切分窗口：窗口长 `floor(n / periods)`，优化段长 `floor(window * ratio)`。

    Raises
    ------
    ConfigurationError
        数据不足以切出 `periods` 个窗口，或测试段为空。
    """
    if periods <= 0:
        raise ConfigurationError("walk_forward.periods must be positive")
    size = n // periods
    if size == 0:
        raise ConfigurationError(f"not enough data ({n} candles) for {periods} walk-forward periods")
    opt_size = int(size * optimization_ratio)
    if size - opt_size <= 0:
        raise ConfigurationError("walk-forward test slice is empty; lower optimization_ratio")
    windows = []
    for i in range(periods):
        start = i * size
        windows.append(Window(i, start, start + opt_size, min(start + size, n)))
    return windows


class WalkForwardEngine(BaseEngine):
    """Walk-forward 引擎。

    Parameters
    ----------
    cfg:
        总配置（使用 `walk_forward` 段）。
    strategy:
        策略模板（类、工厂或实例）；每个窗口都会得到一个全新实例。
    data:
        K 线来源。
    param_provider:
        `(strategy, optimization_slice) -> params`；缺省用策略默认参数。
    stop_token:
        协作式取消；只在窗口之间检查。
    """

    def __init__(
        self,
        cfg: MainConfig | None,
        strategy: Any,
        data: CandleSource,
        *,
        param_provider: ParamProvider | None = None,
        event_sink: EventSink | None = None,
        stop_token: StopToken | None = None,
    ):
        super().__init__(event_sink)
        self.cfg = cfg or MainConfig()
        self.strategy = strategy
        self.candles = load_candles(data, default_symbol=self.cfg.backtest.default_symbol)
        self.param_provider = param_provider or default_param_provider
        self.stop_token = stop_token or StopToken()
        self.logger = setup_logger("walkforward", self.cfg.log_level)

    def _run_window(self, window: Window) -> dict[str, Any] | None:
        if self.stop_token.should_stop():
            return None
        opt_slice = self.candles[window.start:window.optimization_end]
        test_slice = self.candles[window.optimization_end:window.test_end]
        params = dict(self.param_provider(self.strategy, opt_slice))

        engine = BacktestEngine(self.cfg, instantiate_strategy(self.strategy, params), test_slice, quiet=True)
        result = engine.run_standard()
        portfolio = result.summary["portfolio"]
        record = {
            "period": window.index + 1,
            "optimization_period": {"start": window.start, "end": window.optimization_end},
            "test_period": {"start": window.optimization_end, "end": window.test_end},
            "parameters": params,
            "total_pnl": portfolio["total_pnl"],
            "test_results": {
                "portfolio": portfolio,
                "performance": result.summary["performance"],
                "data_points": result.summary["data_points"],
            },
        }
        self.logger.info("Window %d: pnl=%.2f params=%s", window.index + 1, portfolio["total_pnl"], params)
        self.emit("window_completed", {"period": window.index + 1, "total_pnl": portfolio["total_pnl"]})
        return record

    def run(self) -> EngineResult:
        wf = self.cfg.walk_forward
        windows = split_windows(len(self.candles), wf.periods, wf.optimization_ratio)
        if self.strategy is None:
            raise ConfigurationError("strategy not set")
        self._enter_running()
        try:
            records = map_ordered(self._run_window, windows, wf.parallel_jobs)
        except Exception as exc:
            self._finish(False, exc)
            raise
        completed = [r for r in records if r is not None]
        stopped = len(completed) < len(windows)
        self._finish(True)
        summary = {
            "type": "walk_forward",
            "state": self.state.value,
            "stopped": stopped,
            "periods": completed,
            "summary": summarize_windows(completed),
        }
        return EngineResult(summary=summary)


def summarize_windows(records: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    if not records:
        return {"total_periods": 0, "average_return": 0.0, "consistency": 0.0, "best_period": None, "worst_period": None}
    pnls = [r["total_pnl"] for r in records]
    # 并列时取下标最小的窗口
    best = max(range(len(records)), key=lambda i: (pnls[i], -i))
    worst = min(range(len(records)), key=lambda i: (pnls[i], i))
    return {
        "total_periods": len(records),
        "average_return": mean(pnls),
        "consistency": sum(1 for p in pnls if p > 0) / len(pnls),
        "best_period": {"period": records[best]["period"], "total_pnl": pnls[best]},
        "worst_period": {"period": records[worst]["period"], "total_pnl": pnls[worst]},
    }
