"""统一异常类型。

致命错误（配置/数据校验）会直接抛给调用方；其余错误在单步/单候选内被捕获，
转换为“无信号”或 fitness = -inf，保证回测与搜索总能走到终态。
"""

from __future__ import annotations


class StratForgeError(Exception):
    """所有 StratForge 异常的基类。"""


class ConfigurationError(StratForgeError, ValueError):
    """配置、K 线数据或参数空间非法（启动前失败）。"""


class ValidationError(StratForgeError, ValueError):
    """信号字段缺失或取值非法（账本内部转为拒单）。"""


class StrategyRuntimeError(StratForgeError):
    """策略在某根 K 线上抛出的异常。"""

    def __init__(self, index: int, cause: BaseException):
        super().__init__(f"strategy failed at candle {index}: {cause}")
        self.index = index
        self.cause = cause


class OptimizationEvaluationError(StratForgeError):
    """单个候选参数评估失败。"""

    def __init__(self, parameters: dict, cause: BaseException):
        super().__init__(f"evaluation failed for {parameters}: {cause}")
        self.parameters = dict(parameters)
        self.cause = cause
