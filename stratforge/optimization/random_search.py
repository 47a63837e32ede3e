"""随机搜索：独立均匀采样 `random_iterations` 组参数。"""

from __future__ import annotations

from stratforge.optimization.base import (
    Candidate,
    Evaluator,
    OptimizationResult,
    SearchStrategy,
    best_candidate,
)
from stratforge.optimization.space import ParameterSpace


class RandomSearch(SearchStrategy):
    method = "random"

    def optimize(self, space: ParameterSpace, evaluator: Evaluator) -> OptimizationResult:
        total = self.cfg.random_iterations
        batch_size = self.cfg.parallel_evaluations
        results: list[Candidate] = []
        stopped = False
        while len(results) < total:
            if self.should_stop():
                stopped = True
                break
            # 采样在主线程里按顺序进行，保证给定 seed 时与并发度无关
            batch = [space.sample(self.rng) for _ in range(min(batch_size, total - len(results)))]
            for params, fitness in zip(batch, self.evaluate_batch(evaluator, batch)):
                results.append(Candidate(params, fitness, iteration=len(results) + 1))
                if (len(results) - 1) % self.cfg.progress_interval == 0:
                    self._emit_progress(len(results), total)

        best = best_candidate(results)
        return self._result(
            best_parameters=dict(best.parameters) if best else {},
            best_fitness=best.fitness if best else float("-inf"),
            iterations=len(results),
            convergence_history=[c.fitness for c in results],
            all_results=results,
            stopped=stopped,
        )
