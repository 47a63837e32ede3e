"""网格搜索：按声明顺序穷举笛卡尔积。"""

from __future__ import annotations

from stratforge.common.errors import ConfigurationError
from stratforge.optimization.base import (
    Candidate,
    Evaluator,
    OptimizationResult,
    SearchStrategy,
    best_candidate,
    chunked,
)
from stratforge.optimization.space import ParameterSpace


class GridSearch(SearchStrategy):
    method = "grid"

    def optimize(self, space: ParameterSpace, evaluator: Evaluator) -> OptimizationResult:
        total = space.grid_size()
        cap = self.cfg.max_combinations
        if cap is not None and total > cap:
            raise ConfigurationError(f"grid has {total} combinations, exceeds max_combinations={cap}")

        combos = list(space.grid())
        self.logger.info("Grid search: evaluating %d combinations", total)
        results: list[Candidate] = []
        stopped = False
        interval = self.cfg.progress_interval
        for batch in chunked(combos, self.cfg.parallel_evaluations):
            if self.should_stop():
                stopped = True
                break
            start = len(results)
            for offset, (params, fitness) in enumerate(zip(batch, self.evaluate_batch(evaluator, batch))):
                idx = start + offset
                results.append(Candidate(params, fitness, iteration=idx + 1))
                if idx % interval == 0:
                    self._emit_progress(idx + 1, total)

        best = best_candidate(results)
        return self._result(
            best_parameters=dict(best.parameters) if best else {},
            best_fitness=best.fitness if best else float("-inf"),
            iterations=len(results),
            convergence_history=[c.fitness for c in results],
            all_results=results,
            stopped=stopped,
            summary={"total_combinations": total},
        )
