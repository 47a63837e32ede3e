"""K 线数据接入：校验、时间戳归一化、稳定排序。

外部加载器负责读文件/拉数据；这里只消费已经解析好的序列（Candle、dict 或 DataFrame）。
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence, Union

import pandas as pd

from stratforge.common.errors import ConfigurationError
from stratforge.common.models.models import Candle

REQUIRED_FIELDS = ("timestamp", "open", "high", "low", "close")

CandleSource = Union[pd.DataFrame, Iterable[Union[Candle, Mapping[str, Any]]]]


def parse_timestamp(value: Any) -> datetime:
    """把 datetime / ISO 字符串 / epoch（秒或毫秒）统一成 datetime。"""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        unit = "ms" if abs(value) >= 1e11 else "s"
        return pd.Timestamp(value, unit=unit).to_pydatetime()
    if isinstance(value, str):
        try:
            return pd.Timestamp(value).to_pydatetime()
        except ValueError as exc:
            raise ConfigurationError(f"Invalid timestamp: {value!r}") from exc
    raise ConfigurationError(f"Invalid timestamp: {value!r}")


def _to_candle(idx: int, raw: Candle | Mapping[str, Any], default_symbol: str) -> Candle:
    if isinstance(raw, Candle):
        if isinstance(raw.timestamp, datetime):
            return raw
        return replace(raw, timestamp=parse_timestamp(raw.timestamp))
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"candle {idx}: unsupported record type {type(raw).__name__}")
    missing = [f for f in REQUIRED_FIELDS if raw.get(f) is None]
    if missing:
        raise ConfigurationError(f"candle {idx}: missing required fields {missing}")
    try:
        return Candle(
            timestamp=parse_timestamp(raw["timestamp"]),
            open=float(raw["open"]),
            high=float(raw["high"]),
            low=float(raw["low"]),
            close=float(raw["close"]),
            volume=float(raw.get("volume") or 0.0),
            symbol=str(raw.get("symbol") or default_symbol),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"candle {idx}: {exc}") from exc


def validate_candle(idx: int, candle: Candle) -> None:
    """OHLC 不变量：`low <= open,close <= high` 且 `low <= high`，并且全部有限。"""
    values = (candle.open, candle.high, candle.low, candle.close)
    if not all(math.isfinite(v) for v in values):
        raise ConfigurationError(f"candle {idx}: non-finite OHLC values {values}")
    if candle.low > candle.high:
        raise ConfigurationError(f"candle {idx}: low {candle.low} > high {candle.high}")
    for name in ("open", "close"):
        v = getattr(candle, name)
        if not candle.low <= v <= candle.high:
            raise ConfigurationError(
                f"candle {idx}: {name} {v} outside [low {candle.low}, high {candle.high}]"
            )


def load_candles(source: CandleSource, default_symbol: str = "DEFAULT") -> list[Candle]:
    """校验并按时间升序（稳定排序）返回 Candle 列表。

    Raises
    ------
    ConfigurationError
        任何一根 K 线缺字段、时间戳非法或违反 OHLC 不变量。
    """
    if isinstance(source, pd.DataFrame):
        frame = source.reset_index() if "timestamp" not in source.columns else source
        records: Sequence[Any] = frame.to_dict("records")
    else:
        records = list(source)

    candles = [_to_candle(i, raw, default_symbol) for i, raw in enumerate(records)]
    for i, candle in enumerate(candles):
        validate_candle(i, candle)
    try:
        return sorted(candles, key=lambda c: c.timestamp)
    except TypeError as exc:
        # naive 与 aware datetime 混用
        raise ConfigurationError(f"inconsistent candle timestamps: {exc}") from exc


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """Candle 列表 -> DataFrame（timestamp 为索引）。"""
    frame = pd.DataFrame(
        [
            {
                "timestamp": c.timestamp,
                "open": c.open,
                "high": c.high,
                "low": c.low,
                "close": c.close,
                "volume": c.volume,
                "symbol": c.symbol,
            }
            for c in candles
        ],
        columns=["timestamp", "open", "high", "low", "close", "volume", "symbol"],
    )
    return frame.set_index("timestamp")
