"""风险调整收益与分布指标。

收益序列统一为“相邻权益点收益率”，年化按 252 个交易日。
边界约定：
- 空序列或只有一个点：Sharpe/Sortino 为 0；
- 标准差为 0：比率为 0；
- 没有低于目标的收益：Sortino 为 +inf（哨兵值，而非错误）。
"""

from __future__ import annotations

import math
from statistics import mean, pstdev
from typing import Sequence

TRADING_DAYS = 252


def period_returns(equities: Sequence[float]) -> list[float]:
    """相邻权益点的简单收益率；前值 <= 0 的点跳过。"""
    returns = []
    for prev, curr in zip(equities, equities[1:]):
        if prev > 0:
            returns.append((curr - prev) / prev)
    return returns


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.02) -> float:
    """`(mean - rf/252) / std`（总体标准差）。"""
    if len(returns) < 2:
        return 0.0
    sigma = pstdev(returns)
    if sigma == 0:
        return 0.0
    return (mean(returns) - risk_free_rate / TRADING_DAYS) / sigma


def sortino_ratio(returns: Sequence[float], target: float = 0.0) -> float:
    """`(mean - target) / downside_deviation`，下行集合为低于 target 的收益。"""
    if len(returns) < 2:
        return 0.0
    downside = [r for r in returns if r < target]
    if not downside:
        return math.inf
    dd = math.sqrt(sum((r - target) ** 2 for r in downside) / len(downside))
    if dd == 0:
        return 0.0
    return (mean(returns) - target) / dd


def calmar_ratio(total_return: float, max_drawdown: float) -> float:
    """两个参数都是小数（0.1 表示 10%）。"""
    return total_return / max_drawdown if max_drawdown > 0 else 0.0


def value_at_risk(returns: Sequence[float], confidence: float = 0.05) -> float:
    """历史模拟 VaR：升序收益的 `floor(confidence * n)` 分位点。"""
    if not returns:
        return 0.0
    ordered = sorted(returns)
    idx = int(math.floor(confidence * len(ordered)))
    return ordered[idx] if idx < len(ordered) else 0.0


def conditional_var(returns: Sequence[float], confidence: float = 0.05) -> float:
    """CVaR：VaR 分位点以下尾部收益的均值；尾部为空时为 0。"""
    if not returns:
        return 0.0
    ordered = sorted(returns)
    tail = ordered[: int(math.floor(confidence * len(ordered)))]
    return mean(tail) if tail else 0.0


def volatility(returns: Sequence[float]) -> float:
    """年化波动率 `std * sqrt(252)`。"""
    if not returns:
        return 0.0
    return pstdev(returns) * math.sqrt(TRADING_DAYS)


def downside_deviation(returns: Sequence[float]) -> float:
    negatives = [r for r in returns if r < 0]
    return pstdev(negatives) if negatives else 0.0


def max_drawdown(values: Sequence[float]) -> tuple[float, float]:
    """返回 (最大回撤金额, 最大回撤百分比)。

    Examples
    --------
    >>> max_drawdown([100, 110, 90, 95, 120])[1]  # doctest: +ELLIPSIS
    18.18...
    """
    if not values:
        return 0.0, 0.0
    peak = values[0]
    worst = 0.0
    worst_pct = 0.0
    for v in values:
        peak = max(peak, v)
        dd = peak - v
        worst = max(worst, dd)
        if peak > 0:
            worst_pct = max(worst_pct, dd / peak * 100)
    return worst, worst_pct


def drawdown_series(values: Sequence[float]) -> list[float]:
    """逐点回撤百分比。"""
    out = []
    peak = values[0] if values else 0.0
    for v in values:
        peak = max(peak, v)
        out.append((peak - v) / peak * 100 if peak > 0 else 0.0)
    return out


def floor_percentile(ordered: Sequence[float], q: float) -> float:
    """已排序序列的 `floor(q * n)` 下标取值（不插值）。"""
    if not ordered:
        return 0.0
    return ordered[min(int(math.floor(q * len(ordered))), len(ordered) - 1)]


def longest_streak(pnls: Sequence[float], winning: bool = True) -> int:
    best = current = 0
    for pnl in pnls:
        if (pnl > 0) if winning else (pnl < 0):
            current += 1
            best = max(best, current)
        else:
            current = 0
    return best


def histogram(values: Sequence[float], bins: int = 20) -> list[dict]:
    """固定 bins 的直方图，区间覆盖 `[min, max]`，最大值落入最后一个 bin。"""
    if not values or bins <= 0:
        return []
    lo, hi = min(values), max(values)
    width = (hi - lo) / bins
    counts = [0] * bins
    for v in values:
        idx = 0 if width == 0 else min(int((v - lo) / width), bins - 1)
        counts[idx] += 1
    total = len(values)
    out = []
    for i, count in enumerate(counts):
        start = lo + i * width
        out.append(
            {
                "range": f"{start:.2f} to {start + width:.2f}",
                "start": start,
                "end": start + width,
                "count": count,
                "percentage": count / total * 100,
            }
        )
    return out
