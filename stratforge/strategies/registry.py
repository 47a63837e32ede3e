"""策略注册表：字符串 -> Strategy 实现。"""

from __future__ import annotations

import inspect
from typing import Any, Mapping

from stratforge.common.errors import ConfigurationError
from stratforge.strategies.base import Strategy
from stratforge.strategies.simple_ma import SimpleMAStrategy

_REGISTRY: dict[str, type[Strategy]] = {}


def register_strategy(name: str, cls: type[Strategy]) -> None:
    _REGISTRY[name] = cls


def get_strategy_cls(name: str) -> type[Strategy]:
    if name not in _REGISTRY:
        raise ConfigurationError(f"Unknown strategy: {name}")
    return _REGISTRY[name]


def _filter_init_kwargs(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """过滤出策略支持的参数，避免配置里多字段导致报错。"""
    declared = getattr(cls, "default_params", None)
    if isinstance(declared, Mapping) and declared:
        return {k: v for k, v in params.items() if k in declared}

    sig = inspect.signature(cls.__init__)
    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(params)
    allowed = {name for name in sig.parameters.keys() if name != "self"}
    return {k: v for k, v in params.items() if k in allowed}


def build_strategy(cfg: Mapping[str, Any] | None) -> Strategy:
    """从配置构建策略实例：`{"type": "simple_ma", "short_window": 5, ...}`。"""
    if cfg is None:
        return SimpleMAStrategy()
    if not isinstance(cfg, Mapping):
        raise ConfigurationError("strategy cfg must be a mapping")

    name = str(cfg.get("type", "simple_ma"))
    params = dict(cfg.get("params") or {})
    params.update({k: v for k, v in cfg.items() if k not in {"type", "params"}})

    cls = get_strategy_cls(name)
    return cls(**_filter_init_kwargs(cls, params))


register_strategy("simple_ma", SimpleMAStrategy)
