"""配置架构定义（Pydantic Schema）。

所有段都 `extra="forbid"`：typo 在启动阶段就失败，而不是在长回测/长搜索中途才暴露。
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _check_fraction(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


class PortfolioConfig(BaseModel):
    """账本/风控/仓位配置。"""
    initial_balance: float = Field(default=10000.0, gt=0)
    max_positions: int = Field(default=10, ge=1)
    max_risk_per_trade: float = 0.02
    max_total_risk: float = 0.10
    commission: float = Field(default=0.001, ge=0)
    slippage: float = Field(default=0.0005, ge=0)
    margin_requirement: float = Field(default=1.0, gt=0)
    quiet_risk_logs: bool = False

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_risk(self) -> "PortfolioConfig":
        _check_fraction("max_risk_per_trade", self.max_risk_per_trade)
        _check_fraction("max_total_risk", self.max_total_risk)
        return self


class ExecutionConfig(BaseModel):
    """撮合模拟配置：点差/滑点/冲击成本/延迟。"""
    enabled: bool = True
    spread: float = Field(default=0.0002, ge=0)
    slippage: float = Field(default=0.0005, ge=0)
    market_impact: float = Field(default=0.0001, ge=0)
    latency_ms: int = Field(default=100, ge=0)

    model_config = ConfigDict(extra="forbid")


class BacktestConfig(BaseModel):
    """回测与报告配置。"""
    mode: Literal["standard", "walk_forward", "monte_carlo"] = "standard"
    progress_interval: int = Field(default=100, ge=1)
    risk_free_rate: float = 0.02
    var_confidence: float = Field(default=0.05, gt=0, lt=1)
    sortino_target: float = 0.0
    histogram_bins: int = Field(default=20, ge=1)
    default_symbol: str = "DEFAULT"

    model_config = ConfigDict(extra="forbid")


class WalkForwardConfig(BaseModel):
    periods: int = Field(default=12, ge=1)
    optimization_ratio: float = Field(default=0.7, ge=0, lt=1)
    parallel_jobs: int = Field(default=1, ge=1)

    model_config = ConfigDict(extra="forbid")


class MonteCarloConfig(BaseModel):
    runs: int = Field(default=1000, ge=1)
    seed: Optional[int] = None
    # 1 = 逐根独立有放回抽样；>1 = 连续块 bootstrap
    block_size: int = Field(default=1, ge=1)
    parallel_jobs: int = Field(default=1, ge=1)

    model_config = ConfigDict(extra="forbid")


class OptimizerConfig(BaseModel):
    """参数优化配置（grid/random/genetic/bayesian）。"""
    method: Literal["grid", "random", "genetic", "bayesian"] = "genetic"
    fitness_function: Literal[
        "profit", "sharpe", "sortino", "calmar", "profit_factor", "win_rate", "custom"
    ] = "sharpe"
    population_size: int = Field(default=50, ge=2)
    generations: int = Field(default=100, ge=1)
    mutation_rate: float = 0.1
    crossover_rate: float = 0.8
    elitism_rate: float = 0.1
    tournament_size: int = Field(default=3, ge=1)
    convergence_threshold: float = Field(default=0.001, ge=0)
    max_stagnant_generations: int = Field(default=20, ge=1)
    parallel_evaluations: int = Field(default=4, ge=1)
    random_iterations: int = Field(default=1000, ge=1)
    bayesian_iterations: int = Field(default=100, ge=1)
    candidate_samples: int = Field(default=1000, ge=1)
    exploration_noise: float = Field(default=0.1, ge=0)
    max_combinations: Optional[int] = Field(default=None, ge=1)
    progress_interval: int = Field(default=10, ge=1)
    seed: Optional[int] = None
    timeout_secs: Optional[float] = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_rates(self) -> "OptimizerConfig":
        _check_fraction("mutation_rate", self.mutation_rate)
        _check_fraction("crossover_rate", self.crossover_rate)
        _check_fraction("elitism_rate", self.elitism_rate)
        return self


class MainConfig(BaseModel):
    """应用总配置。"""
    log_level: str = "INFO"
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    walk_forward: WalkForwardConfig = Field(default_factory=WalkForwardConfig)
    monte_carlo: MonteCarloConfig = Field(default_factory=MonteCarloConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
