"""Fitness 函数：把一次标准回测结果映射为标量（越大越好）。"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from stratforge.analysis.metrics.metrics import (
    calmar_ratio,
    period_returns,
    sharpe_ratio,
    sortino_ratio,
)
from stratforge.common.config.schema import BacktestConfig
from stratforge.common.errors import ConfigurationError
from stratforge.core.base_engine import EngineResult

FitnessFn = Callable[[EngineResult, BacktestConfig], float]


def _returns(result: EngineResult) -> list[float]:
    history = (result.artifacts or {}).get("equity_history") or []
    return period_returns([p.equity for p in history])


def _initial_balance(result: EngineResult) -> float:
    return float(result.summary["portfolio"]["initial_balance"])


def profit(result: EngineResult, cfg: BacktestConfig) -> float:
    return float(result.summary["portfolio"]["total_pnl"])


def sharpe(result: EngineResult, cfg: BacktestConfig) -> float:
    return sharpe_ratio(_returns(result), cfg.risk_free_rate)


def sortino(result: EngineResult, cfg: BacktestConfig) -> float:
    return sortino_ratio(_returns(result), cfg.sortino_target)


def calmar(result: EngineResult, cfg: BacktestConfig) -> float:
    portfolio = result.summary["portfolio"]
    initial = _initial_balance(result)
    total_return = (portfolio["equity"] - initial) / initial if initial else 0.0
    return calmar_ratio(total_return, result.summary["performance"]["max_drawdown_percent"] / 100)


def profit_factor(result: EngineResult, cfg: BacktestConfig) -> float:
    return float(result.summary["performance"]["profit_factor"])


def win_rate(result: EngineResult, cfg: BacktestConfig) -> float:
    return float(result.summary["performance"]["win_rate"])


def custom(result: EngineResult, cfg: BacktestConfig) -> float:
    """多目标：收益 + 胜率 - 回撤；交易数少于 10 笔时整体减半。"""
    portfolio: Mapping[str, Any] = result.summary["portfolio"]
    perf: Mapping[str, Any] = result.summary["performance"]
    profit_score = portfolio["total_pnl"] / _initial_balance(result)
    drawdown_penalty = perf["max_drawdown_percent"] / 100
    win_rate_bonus = perf["win_rate"] / 100
    trade_count_penalty = 0.5 if perf["total_trades"] < 10 else 1.0
    return (profit_score + win_rate_bonus - drawdown_penalty) * trade_count_penalty


FITNESS_FUNCTIONS: dict[str, FitnessFn] = {
    "profit": profit,
    "sharpe": sharpe,
    "sortino": sortino,
    "calmar": calmar,
    "profit_factor": profit_factor,
    "win_rate": win_rate,
    "custom": custom,
}


def resolve_fitness(fitness: str | FitnessFn) -> FitnessFn:
    if callable(fitness):
        return fitness
    try:
        return FITNESS_FUNCTIONS[fitness]
    except KeyError as exc:
        raise ConfigurationError(f"Unknown fitness function: {fitness}") from exc
