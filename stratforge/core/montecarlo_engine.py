"""Monte Carlo bootstrap 分析引擎。

每一轮从源数据有放回地抽出等长序列后跑一次标准回测，统计各轮总 PnL 的分布。
`block_size == 1` 时逐根独立抽样（不保留时间连续性）；`> 1` 时按连续块抽样。
"""

from __future__ import annotations

import random
from statistics import mean, pstdev
from typing import Any, Sequence

from stratforge.analysis.metrics.metrics import floor_percentile
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
from stratforge.strategies.base import instantiate_strategy


def bootstrap_indices(n: int, rng: random.Random, block_size: int = 1) -> list[int]:
    """生成长度为 n 的重抽样下标。"""
    if n <= 0:
        return []
    if block_size <= 1:
        return [rng.randrange(n) for _ in range(n)]
    block = min(block_size, n)
    out: list[int] = []
    while len(out) < n:
        start = rng.randrange(n - block + 1)
        out.extend(range(start, start + block))
    return out[:n]


def bootstrap_sample(candles: Sequence[Candle], rng: random.Random, block_size: int = 1) -> list[Candle]:
    return [candles[i] for i in bootstrap_indices(len(candles), rng, block_size)]


def summarize_runs(pnls: Sequence[float]) -> dict[str, Any]:
    """总 PnL 分布统计；中位数与分位数按 floor 下标取值。"""
    if not pnls:
        return {"total_runs": 0, "average_return": 0.0, "median_return": 0.0, "standard_deviation": 0.0,
                "percentiles": {}, "probability_of_profit": 0.0}
    ordered = sorted(pnls)
    return {
        "total_runs": len(ordered),
        "average_return": mean(ordered),
        "median_return": ordered[len(ordered) // 2],
        "standard_deviation": pstdev(ordered),
        "percentiles": {f"p{q}": floor_percentile(ordered, q / 100) for q in (5, 25, 75, 95)},
        "probability_of_profit": sum(1 for p in ordered if p > 0) / len(ordered),
    }


class MonteCarloEngine(BaseEngine):
    """Monte Carlo 引擎。

    重抽样下标在主线程里用同一个 `random.Random(seed)` 顺序生成，之后才并发回测，
    因此结果与并发度无关、给定 seed 可复现。
    """

    def __init__(
        self,
        cfg: MainConfig | None,
        strategy: Any,
        data: CandleSource,
        *,
        event_sink: EventSink | None = None,
        stop_token: StopToken | None = None,
    ):
        super().__init__(event_sink)
        self.cfg = cfg or MainConfig()
        self.strategy = strategy
        self.candles = load_candles(data, default_symbol=self.cfg.backtest.default_symbol)
        self.stop_token = stop_token or StopToken()
        self.logger = setup_logger("montecarlo", self.cfg.log_level)

    def _run_one(self, item: tuple[int, list[int]]) -> dict[str, Any] | None:
        run_idx, indices = item
        if self.stop_token.should_stop():
            return None
        sample = [self.candles[i] for i in indices]
        engine = BacktestEngine(self.cfg, instantiate_strategy(self.strategy), sample, quiet=True)
        portfolio = engine.run_standard().summary["portfolio"]
        self.emit("run_completed", {"run": run_idx + 1, "total_pnl": portfolio["total_pnl"]})
        return {
            "run": run_idx + 1,
            "total_pnl": portfolio["total_pnl"],
            "final_equity": portfolio["equity"],
            "total_trades": portfolio["total_trades"],
        }

    def run(self) -> EngineResult:
        mc = self.cfg.monte_carlo
        if not self.candles:
            raise ConfigurationError("no market data loaded")
        if self.strategy is None:
            raise ConfigurationError("strategy not set")
        self._enter_running()
        rng = random.Random(mc.seed)
        plans = [(i, bootstrap_indices(len(self.candles), rng, mc.block_size)) for i in range(mc.runs)]
        self.logger.info("Monte Carlo started: runs=%d block_size=%d", mc.runs, mc.block_size)
        try:
            records = map_ordered(self._run_one, plans, mc.parallel_jobs)
        except Exception as exc:
            self._finish(False, exc)
            raise
        completed = [r for r in records if r is not None]
        self._finish(True)
        summary = summarize_runs([r["total_pnl"] for r in completed])
        self.logger.info(
            "Monte Carlo completed: runs=%d p(profit)=%.3f", len(completed), summary["probability_of_profit"]
        )
        return EngineResult(
            summary={
                "type": "monte_carlo",
                "state": self.state.value,
                "stopped": len(completed) < mc.runs,
                "runs": completed,
                "summary": summary,
            }
        )
