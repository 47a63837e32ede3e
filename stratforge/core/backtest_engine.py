"""回测编排器（BacktestEngine）。

逐根 K 线严格按时间顺序推进：
1) 用当根收盘价刷新账本（可能触发止损/止盈平仓）；
2) 向策略请求信号（传入 K 线、下标、历史视图、账本快照）；
3) 信号经撮合模拟（可关闭）后交给账本开/平仓；
4) 记录权益点。
最后一根 K 线之后，按最后收盘价强平剩余持仓（reason=backtest_end）。
"""

from __future__ import annotations

import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

from stratforge.analysis.reports.report import export_results, generate_report
from stratforge.common.config.schema import MainConfig
from stratforge.common.errors import ConfigurationError, StrategyRuntimeError, ValidationError
from stratforge.common.events import EventSink
from stratforge.common.models.models import Candle, CloseReason, Side, Signal, SignalAction
from stratforge.common.utils.logging import setup_logger
from stratforge.core.base_engine import BaseEngine, EngineResult, EngineState
from stratforge.core.data import CandleSource, load_candles
from stratforge.execution.ledger import LedgerResult, PortfolioLedger
from stratforge.execution.simulator import ExecutionSimulator
from stratforge.strategies.base import HistoryView, StrategyContext, reset_strategy


def call_strategy(strategy: Any, context: StrategyContext) -> Any:
    on_candle = getattr(strategy, "on_candle", None)
    if callable(on_candle):
        return on_candle(context)
    return strategy.update(context.candle)


def coerce_signal(raw: Any) -> Signal | None:
    if raw is None or isinstance(raw, Signal):
        return raw
    if isinstance(raw, Mapping):
        return Signal.from_mapping(raw)
    raise ValidationError(f"strategy returned unsupported signal type {type(raw).__name__}")


def _check_strategy(strategy: Any) -> None:
    if strategy is None:
        raise ConfigurationError("strategy not set")
    if not callable(getattr(strategy, "on_candle", None)) and not callable(getattr(strategy, "update", None)):
        raise ConfigurationError(
            f"strategy {type(strategy).__name__} must define on_candle(context) or update(candle)"
        )


class BacktestEngine(BaseEngine):
    """回测引擎（统一出口 `run() -> EngineResult`）。

    Parameters
    ----------
    cfg:
        总配置；缺省全部使用默认值。
    strategy:
        策略实例（`on_candle(context)` 或 `update(candle)`）。
    data:
        K 线来源；也可以稍后调用 `load_data`。
    event_sink:
        事件出口（backtest_started/progress/backtest_completed/position_*）。
    quiet:
        参数搜索等批量场景下关闭生命周期 INFO 日志与风控 warning。
    """

    def __init__(
        self,
        cfg: MainConfig | None = None,
        strategy: Any = None,
        data: CandleSource | None = None,
        *,
        event_sink: EventSink | None = None,
        quiet: bool = False,
    ):
        super().__init__(event_sink)
        self.cfg = cfg or MainConfig()
        self.quiet = quiet
        self.logger = setup_logger("backtest", self.cfg.log_level)
        self.strategy = strategy
        self.candles: list[Candle] = []
        self.simulator = ExecutionSimulator(self.cfg.execution) if self.cfg.execution.enabled else None
        self.results: EngineResult | None = None
        self.strategy_errors = 0
        if data is not None:
            self.load_data(data)

    def load_data(self, source: CandleSource) -> list[Candle]:
        """校验并排序 K 线；非法数据直接抛 ConfigurationError。"""
        self.candles = load_candles(source, default_symbol=self.cfg.backtest.default_symbol)
        self._log_lifecycle("Loaded %d candles", len(self.candles))
        return self.candles

    def set_strategy(self, strategy: Any) -> None:
        _check_strategy(strategy)
        self.strategy = strategy

    def _log_lifecycle(self, msg: str, *args: Any) -> None:
        if self.quiet:
            self.logger.debug(msg, *args)
        else:
            self.logger.info(msg, *args)

    # ------------------------------------------------------------------ run
    def run(self) -> EngineResult:
        """按 `backtest.mode` 运行：standard / walk_forward / monte_carlo。"""
        mode = self.cfg.backtest.mode
        if mode == "walk_forward":
            from stratforge.core.walkforward_engine import WalkForwardEngine

            return self._run_delegate(WalkForwardEngine(self.cfg, self.strategy, self.candles, event_sink=self.event_sink))
        if mode == "monte_carlo":
            from stratforge.core.montecarlo_engine import MonteCarloEngine

            return self._run_delegate(MonteCarloEngine(self.cfg, self.strategy, self.candles, event_sink=self.event_sink))
        return self.run_standard()

    def _run_delegate(self, engine: BaseEngine) -> EngineResult:
        if not self.candles:
            raise ConfigurationError("no market data loaded")
        _check_strategy(self.strategy)
        self._enter_running()
        try:
            result = engine.run()
        except Exception as exc:
            self._finish(False, exc)
            raise
        self._finish(True)
        self.results = result
        return result

    def run_standard(self) -> EngineResult:
        """标准回测：单次顺序回放。"""
        if not self.candles:
            raise ConfigurationError("no market data loaded")
        _check_strategy(self.strategy)
        self._enter_running()
        try:
            result = self._replay()
        except Exception as exc:
            self._finish(False, exc)
            self.logger.error("Backtest failed: %s", exc)
            self.emit("backtest_failed", {"error": str(exc)})
            raise
        self._finish(True)
        self.results = result
        return result

    def _replay(self) -> EngineResult:
        candles = self.candles
        total = len(candles)
        started = time.perf_counter()
        portfolio_cfg = self.cfg.portfolio
        if self.quiet and not portfolio_cfg.quiet_risk_logs:
            portfolio_cfg = portfolio_cfg.model_copy(update={"quiet_risk_logs": True})
        ledger = PortfolioLedger(portfolio_cfg, event_sink=self.event_sink, start_time=candles[0].timestamp)
        interval = self.cfg.backtest.progress_interval
        reset_strategy(self.strategy)

        self._log_lifecycle("Backtest started: %d candles", total)
        self.emit("backtest_started", {"data_points": total})

        for i, candle in enumerate(candles):
            ledger.update_position_prices({candle.symbol: candle.close}, candle.timestamp)

            context = StrategyContext(
                candle=candle,
                index=i,
                history=HistoryView(candles, i + 1),
                portfolio=ledger.get_portfolio_summary(),
                positions=ledger.get_open_positions(),
            )
            signal = self._request_signal(context)
            if signal is not None:
                self._apply_signal(ledger, signal, candle)

            ledger.update_equity(candle.timestamp)
            if i % interval == 0:
                self.emit(
                    "progress",
                    {"processed": i + 1, "total": total, "percentage": (i + 1) / total * 100},
                )

        last = candles[-1]
        ledger.close_all(last.close, CloseReason.BACKTEST_END, last.timestamp)

        duration = time.perf_counter() - started
        portfolio = ledger.get_portfolio_summary()
        performance = ledger.get_performance_metrics()
        equity_history = performance.pop("equity_history")
        trades = ledger.trades

        summary = {
            "type": "standard",
            "state": EngineState.COMPLETED.value,
            "portfolio": portfolio,
            "performance": performance,
            "duration": duration,
            "data_points": total,
            "strategy_errors": self.strategy_errors,
        }
        self._log_lifecycle(
            "Backtest completed: trades=%d equity=%.2f (%.3fs)", len(trades), portfolio["equity"], duration
        )
        self.emit("backtest_completed", {"portfolio": portfolio, "duration": duration})
        return EngineResult(
            summary=summary,
            artifacts={
                "trades": trades,
                "equity_history": equity_history,
                "initial_balance": float(portfolio_cfg.initial_balance),
            },
        )

    def _request_signal(self, context: StrategyContext) -> Signal | None:
        try:
            return coerce_signal(call_strategy(self.strategy, context))
        except Exception as exc:
            err = StrategyRuntimeError(context.index, exc)
            self.strategy_errors += 1
            self.logger.warning("%s; treated as no signal", err)
            return None

    def _apply_signal(self, ledger: PortfolioLedger, signal: Signal, candle: Candle) -> LedgerResult | list[LedgerResult]:
        signal = replace(
            signal,
            symbol=signal.symbol or candle.symbol,
            price=signal.price if signal.price is not None else candle.close,
            timestamp=signal.timestamp or candle.timestamp,
        )
        ts = candle.timestamp

        if signal.action in (SignalAction.BUY, SignalAction.SELL):
            if self.simulator is not None:
                signal = self._fill(signal, candle, None)
            return ledger.open_position(signal, ts)

        if signal.position_id is None:
            return ledger.close_all({candle.symbol: candle.close}, CloseReason.SIGNAL, ts)

        price = signal.price
        position = ledger.get_position(signal.position_id)
        if self.simulator is not None and position is not None:
            exit_side = Side.SELL if position.side is Side.BUY else Side.BUY
            price = self._fill(signal, candle, exit_side).price
        return ledger.close_position(signal.position_id, price, CloseReason.SIGNAL, ts)

    def _fill(self, signal: Signal, candle: Candle, side: Side | None) -> Signal:
        fill = self.simulator.execute_signal(signal, candle, side)  # type: ignore[union-attr]
        metadata = {
            **fill.signal.metadata,
            "original_price": fill.original_price,
            "execution_slippage": fill.slippage,
            "effective_time": fill.effective_time,
        }
        return replace(fill.signal, metadata=metadata)

    # ------------------------------------------------------------------ outputs
    def generate_report(self) -> dict[str, Any]:
        """基于最近一次标准回测结果生成结构化报告。"""
        if self.results is None or self.results.summary.get("type") != "standard":
            raise RuntimeError("no standard backtest results; call run() first")
        summary = self.results.summary
        artifacts = self.results.artifacts or {}
        return generate_report(
            portfolio=summary["portfolio"],
            performance=summary["performance"],
            trades=artifacts["trades"],
            equity_history=artifacts["equity_history"],
            initial_balance=artifacts["initial_balance"],
            cfg=self.cfg.backtest,
        )

    def to_document(self) -> dict[str, Any]:
        """`{portfolio, trades, performance, report}` 结果文档。"""
        if self.results is None:
            raise RuntimeError("no results; call run() first")
        summary = self.results.summary
        if summary.get("type") != "standard":
            return dict(summary)
        return {
            "portfolio": summary["portfolio"],
            "trades": [t.to_dict() for t in (self.results.artifacts or {}).get("trades", [])],
            "performance": summary["performance"],
            "duration": summary["duration"],
            "data_points": summary["data_points"],
            "report": self.generate_report(),
        }

    def export_results(self, path: str | Path) -> Path:
        return export_results(self.to_document(), path)
