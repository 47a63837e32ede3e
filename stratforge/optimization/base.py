"""搜索算法公共部分：候选、结果、批量评估与取消。"""

from __future__ import annotations

import math
import random
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from statistics import mean, median, pstdev
from typing import Any, Callable, ClassVar, Mapping, Sequence

from stratforge.common.config.schema import OptimizerConfig
from stratforge.common.events import EventSink, NullEventSink
from stratforge.common.utils.cancel import StopToken
from stratforge.common.utils.logging import setup_logger
from stratforge.core.parallel import map_ordered
from stratforge.optimization.space import ParameterSpace

Evaluator = Callable[[Mapping[str, Any]], float]


@dataclass
class Candidate:
    parameters: dict[str, Any]
    fitness: float | None = None
    iteration: int | None = None
    kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"parameters": dict(self.parameters), "fitness": self.fitness}
        if self.iteration is not None:
            out["iteration"] = self.iteration
        if self.kind is not None:
            out["type"] = self.kind
        return out


@dataclass
class OptimizationResult:
    method: str
    best_parameters: dict[str, Any]
    best_fitness: float
    iterations: int
    convergence_history: list[Any] = field(default_factory=list)
    all_results: list[Candidate] | None = None
    final_population: list[Candidate] | None = None
    stopped: bool = False
    converged: bool = False
    summary: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "method": self.method,
            "best_parameters": dict(self.best_parameters),
            "best_fitness": self.best_fitness,
            "iterations": self.iterations,
            "convergence_history": list(self.convergence_history),
            "stopped": self.stopped,
            "converged": self.converged,
            "summary": dict(self.summary),
        }
        if self.all_results is not None:
            out["all_results"] = [c.to_dict() for c in self.all_results]
        if self.final_population is not None:
            out["final_population"] = [c.to_dict() for c in self.final_population]
        return out


def summarize_fitness(values: Sequence[float]) -> dict[str, Any]:
    """评估统计：有限值算 valid，-inf/nan 算 invalid。"""
    finite = sorted(v for v in values if v is not None and math.isfinite(v))
    out: dict[str, Any] = {
        "evaluations": len(values),
        "valid": len(finite),
        "invalid": len(values) - len(finite),
    }
    if finite:
        out.update(
            best=finite[-1],
            worst=finite[0],
            average=mean(finite),
            median=median(finite),
            std=pstdev(finite),
        )
    return out


def best_candidate(candidates: Sequence[Candidate]) -> Candidate | None:
    """fitness 最大者；并列取先出现的。"""
    best = None
    for cand in candidates:
        if cand.fitness is None:
            continue
        if best is None or cand.fitness > best.fitness:  # type: ignore[operator]
            best = cand
    return best


class SearchStrategy(ABC):
    """搜索算法接口：`optimize(space, evaluator) -> OptimizationResult`。

    Parameters
    ----------
    cfg:
        优化器配置。
    stop_token:
        协作式取消；只在批次/代之间检查。
    event_sink:
        进度事件出口。
    seed:
        随机种子；缺省取 `cfg.seed`。
    """

    method: ClassVar[str] = "base"

    def __init__(
        self,
        cfg: OptimizerConfig | None = None,
        *,
        stop_token: StopToken | None = None,
        event_sink: EventSink | None = None,
        seed: int | None = None,
    ):
        self.cfg = cfg or OptimizerConfig()
        self.stop_token = stop_token or StopToken()
        self.event_sink = event_sink or NullEventSink()
        self.rng = random.Random(seed if seed is not None else self.cfg.seed)
        self.logger = setup_logger("optimize")
        self._fitness_log: list[float] = []
        self._log_lock = threading.Lock()

    def should_stop(self) -> bool:
        return self.stop_token.should_stop()

    def evaluate_batch(self, evaluator: Evaluator, params_list: Sequence[Mapping[str, Any]]) -> list[float]:
        """批量评估（最多 parallel_evaluations 个并发），返回顺序与输入一致；批次完成才返回。"""
        values = map_ordered(evaluator, list(params_list), self.cfg.parallel_evaluations)
        with self._log_lock:
            self._fitness_log.extend(values)
        return values

    def _result(self, **kwargs: Any) -> OptimizationResult:
        result = OptimizationResult(method=self.method, **kwargs)
        result.summary = {**summarize_fitness(self._fitness_log), **result.summary}
        return result

    def _emit_progress(self, completed: int, total: int) -> None:
        self.event_sink.emit(
            "evaluation_progress",
            {"completed": completed, "total": total, "percentage": completed / total * 100 if total else 100.0},
        )

    @abstractmethod
    def optimize(self, space: ParameterSpace, evaluator: Evaluator) -> OptimizationResult:
        raise NotImplementedError


def chunked(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    size = max(1, int(size))
    return [items[i:i + size] for i in range(0, len(items), size)]
