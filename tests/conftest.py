import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from stratforge.common.models.models import Candle  # noqa: E402

START = datetime(2024, 1, 1)


def build_candles(closes, symbol="BTCUSDT", spread=1.0, step=timedelta(days=1)):
    """按收盘价序列构造 K 线：open=close，high/low 上下各扩 spread。"""
    return [
        Candle(
            timestamp=START + i * step,
            open=float(c),
            high=float(c) + spread,
            low=float(c) - spread,
            close=float(c),
            volume=1.0,
            symbol=symbol,
        )
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def make_candles():
    return build_candles
