"""回测报告生成与导出。

报告分五段：summary / performance / risk / trades / charts，全部为可 JSON 序列化的 dict
（inf/nan 在导出时由 `sanitize_for_json` 处理）。
"""

from __future__ import annotations

import json
from pathlib import Path
from statistics import mean
from typing import Any, Mapping, Sequence

import pandas as pd

from stratforge.analysis.metrics.metrics import (
    calmar_ratio,
    conditional_var,
    downside_deviation,
    drawdown_series,
    floor_percentile,
    histogram,
    longest_streak,
    period_returns,
    sharpe_ratio,
    sortino_ratio,
    value_at_risk,
    volatility,
)
from stratforge.common.config.schema import BacktestConfig
from stratforge.common.models.models import EquityPoint, Trade
from stratforge.common.utils.json_sanitize import sanitize_for_json


def _trades_frame(trades: Sequence[Trade]) -> pd.DataFrame:
    frame = pd.DataFrame([t.to_dict() for t in trades])
    frame["exit_time"] = pd.to_datetime(frame["exit_time"])
    return frame


def _pnl_by_period(trades: Sequence[Trade], fmt: str) -> dict[str, float]:
    """按平仓时间分组累计已实现 PnL（fmt 为 strftime 格式）。"""
    if not trades:
        return {}
    frame = _trades_frame(trades)
    grouped = frame.groupby(frame["exit_time"].dt.strftime(fmt), sort=True)["pnl"].sum()
    return {str(k): float(v) for k, v in grouped.items()}


def _group_trades(trades: Sequence[Trade], key) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for trade in trades:
        grouped.setdefault(key(trade), []).append(trade.to_dict())
    return grouped


def holding_periods(trades: Sequence[Trade]) -> dict[str, Any]:
    """持仓时长（秒）统计；分位数按 floor 下标取值。"""
    if not trades:
        return {}
    durations = sorted(t.duration for t in trades)
    return {
        "min": durations[0],
        "max": durations[-1],
        "median": durations[len(durations) // 2],
        "average": mean(durations),
        "percentiles": {
            "p25": floor_percentile(durations, 0.25),
            "p75": floor_percentile(durations, 0.75),
            "p90": floor_percentile(durations, 0.90),
        },
    }


def generate_report(
    *,
    portfolio: Mapping[str, Any],
    performance: Mapping[str, Any],
    trades: Sequence[Trade],
    equity_history: Sequence[EquityPoint],
    initial_balance: float,
    cfg: BacktestConfig | None = None,
) -> dict[str, Any]:
    """生成结构化回测报告。

    Parameters
    ----------
    portfolio:
        `PortfolioLedger.get_portfolio_summary()` 的结果。
    performance:
        `PortfolioLedger.get_performance_metrics()` 的结果。
    trades:
        按发生顺序排列的成交记录。
    equity_history:
        权益曲线。
    initial_balance:
        初始资金。
    cfg:
        回测配置（无风险利率、VaR 置信度、直方图 bins 等）。

    Returns
    -------
    dict
        `{summary, performance, risk, trades, charts}`。
    """
    cfg = cfg or BacktestConfig()
    equities = [p.equity for p in equity_history]
    returns = period_returns(equities)
    final_equity = float(portfolio["equity"])
    total_return_frac = (final_equity - initial_balance) / initial_balance if initial_balance else 0.0
    max_dd_pct = float(performance["max_drawdown_percent"])

    summary = {
        "initial_balance": initial_balance,
        "final_balance": portfolio["balance"],
        "final_equity": final_equity,
        "total_return": portfolio["total_pnl"],
        "total_return_percent": total_return_frac * 100,
        "total_trades": performance["total_trades"],
        "winning_trades": performance["winning_trades"],
        "losing_trades": performance["losing_trades"],
        "win_rate": performance["win_rate"],
        "profit_factor": performance["profit_factor"],
        "max_drawdown": performance["max_drawdown"],
        "max_drawdown_percent": max_dd_pct,
        "sharpe_ratio": sharpe_ratio(returns, cfg.risk_free_rate),
        "sortino_ratio": sortino_ratio(returns, cfg.sortino_target),
        "calmar_ratio": calmar_ratio(total_return_frac, max_dd_pct / 100),
    }

    pnls = [t.pnl for t in trades]
    if trades:
        wins = [p for p in pnls if p > 0]
        losses = [p for p in pnls if p < 0]
        perf_section: dict[str, Any] = {
            "average_win": mean(wins) if wins else 0.0,
            "average_loss": mean(losses) if losses else 0.0,
            "largest_win": max(wins) if wins else 0.0,
            "largest_loss": min(losses) if losses else 0.0,
            "average_trade_duration": mean(t.duration for t in trades),
            "consecutive_wins": longest_streak(pnls, winning=True),
            "consecutive_losses": longest_streak(pnls, winning=False),
            "monthly_returns": _pnl_by_period(trades, "%Y-%m"),
            "yearly_returns": _pnl_by_period(trades, "%Y"),
        }
    else:
        perf_section = {"message": "No trades executed"}

    risk = {
        "max_drawdown": performance["max_drawdown"],
        "max_drawdown_percent": max_dd_pct,
        "value_at_risk": value_at_risk(returns, cfg.var_confidence),
        "conditional_var": conditional_var(returns, cfg.var_confidence),
        "volatility": volatility(returns),
        "downside_deviation": downside_deviation(returns),
    }

    trade_section = {
        "total_trades": len(trades),
        "by_symbol": _group_trades(trades, lambda t: t.symbol),
        "by_strategy": _group_trades(trades, lambda t: t.strategy or "default"),
        "by_month": _group_trades(trades, lambda t: t.exit_time.strftime("%Y-%m")),
        "holding_periods": holding_periods(trades),
    }

    monthly = _pnl_by_period(trades, "%Y-%m")
    charts = {
        "equity_curve": [
            {
                "timestamp": p.timestamp,
                "equity": p.equity,
                "balance": p.balance,
                "unrealized_pnl": p.unrealized_pnl,
            }
            for p in equity_history
        ],
        "drawdown_curve": [
            {"timestamp": p.timestamp, "drawdown": dd}
            for p, dd in zip(equity_history, drawdown_series(equities))
        ],
        "monthly_returns": [
            {
                "month": month,
                "returns": value,
                "returns_percent": value / initial_balance * 100 if initial_balance else 0.0,
            }
            for month, value in monthly.items()
        ],
        "trade_distribution": histogram(pnls, cfg.histogram_bins),
    }

    return {
        "summary": summary,
        "performance": perf_section,
        "risk": risk,
        "trades": trade_section,
        "charts": charts,
    }


def export_results(document: Mapping[str, Any], path: str | Path) -> Path:
    """把结果文档写成标准 JSON（inf/nan/datetime 已转换）。"""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(
        json.dumps(sanitize_for_json(dict(document)), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return out
