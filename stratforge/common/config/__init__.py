from stratforge.common.config.config_loader import build_config, load_config
from stratforge.common.config.schema import (
    BacktestConfig,
    ExecutionConfig,
    MainConfig,
    MonteCarloConfig,
    OptimizerConfig,
    PortfolioConfig,
    WalkForwardConfig,
)

__all__ = [
    "BacktestConfig",
    "ExecutionConfig",
    "MainConfig",
    "MonteCarloConfig",
    "OptimizerConfig",
    "PortfolioConfig",
    "WalkForwardConfig",
    "build_config",
    "load_config",
]
