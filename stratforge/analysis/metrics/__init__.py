from stratforge.analysis.metrics.metrics import (
    calmar_ratio,
    conditional_var,
    downside_deviation,
    drawdown_series,
    floor_percentile,
    histogram,
    max_drawdown,
    period_returns,
    sharpe_ratio,
    sortino_ratio,
    value_at_risk,
    volatility,
)

__all__ = [
    "calmar_ratio",
    "conditional_var",
    "downside_deviation",
    "drawdown_series",
    "floor_percentile",
    "histogram",
    "max_drawdown",
    "period_returns",
    "sharpe_ratio",
    "sortino_ratio",
    "value_at_risk",
    "volatility",
]
