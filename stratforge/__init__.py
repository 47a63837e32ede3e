"""StratForge：策略回测与参数优化引擎。"""

__version__ = "0.3.0"
