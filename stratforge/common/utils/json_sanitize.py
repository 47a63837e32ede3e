from __future__ import annotations

import math
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any


def sanitize_for_json(obj: Any) -> Any:
    """
    把结果文档转换成标准 JSON 可写的结构。

    - NaN/Inf 转成字符串，避免写出非标准 JSON（Infinity/NaN）；
    - datetime 转 ISO 字符串，Enum 取 value，dataclass 转 dict。
    """
    if isinstance(obj, bool) or obj is None:
        return obj
    if isinstance(obj, float):
        if math.isnan(obj):
            return "nan"
        if math.isinf(obj):
            return "inf" if obj > 0 else "-inf"
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        to_dict = getattr(obj, "to_dict", None)
        return sanitize_for_json(to_dict() if callable(to_dict) else asdict(obj))
    if isinstance(obj, dict):
        return {str(k): sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(v) for v in obj]
    if hasattr(obj, "item") and callable(obj.item):
        # numpy 标量
        return sanitize_for_json(obj.item())
    return obj
