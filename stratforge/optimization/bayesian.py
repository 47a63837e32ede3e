"""简化版“贝叶斯”优化（启发式，不是真正的代理模型）。

初始阶段随机采样 `ceil(min(10, max_iterations / 4))` 组；之后每轮采样
`candidate_samples` 个候选点，取启发式改进值最大的一个：

    improvement = max(0, f(最近已观测点) - 当前最佳 + noise)

“最近”为数值编码后的欧氏距离；noise ~ U(0, exploration_noise) 用于探索。
只有有限 fitness 的观测参与启发式。
"""

from __future__ import annotations

import math
from typing import Any, Mapping

import numpy as np

from stratforge.optimization.base import (
    Candidate,
    Evaluator,
    OptimizationResult,
    SearchStrategy,
    best_candidate,
    chunked,
)
from stratforge.optimization.space import ParameterSpace


class BayesianOptimizer(SearchStrategy):
    method = "bayesian"

    def initial_samples(self) -> int:
        return int(math.ceil(min(10, self.cfg.bayesian_iterations / 4)))

    def acquire_next(self, space: ParameterSpace, observations: list[Candidate]) -> dict[str, Any]:
        finite = [o for o in observations if o.fitness is not None and math.isfinite(o.fitness)]
        if not finite:
            return space.sample(self.rng)

        candidates = [space.sample(self.rng) for _ in range(self.cfg.candidate_samples)]
        noise = np.array([self.rng.random() for _ in candidates]) * self.cfg.exploration_noise

        cand_x = np.vstack([space.encode(c) for c in candidates])
        obs_x = np.vstack([space.encode(o.parameters) for o in finite])
        obs_f = np.array([o.fitness for o in finite], dtype=float)

        dists = np.linalg.norm(cand_x[:, None, :] - obs_x[None, :, :], axis=2)
        nearest = np.argmin(dists, axis=1)
        improvement = np.maximum(0.0, obs_f[nearest] - obs_f.max() + noise)
        return candidates[int(np.argmax(improvement))]

    def optimize(self, space: ParameterSpace, evaluator: Evaluator) -> OptimizationResult:
        max_iter = self.cfg.bayesian_iterations
        n_init = min(self.initial_samples(), max_iter)
        observations: list[Candidate] = []
        stopped = False

        init_params = [space.sample(self.rng) for _ in range(n_init)]
        for batch in chunked(init_params, self.cfg.parallel_evaluations):
            if self.should_stop():
                stopped = True
                break
            for params, fitness in zip(batch, self.evaluate_batch(evaluator, batch)):
                observations.append(Candidate(params, fitness, iteration=len(observations) + 1, kind="random"))

        while not stopped and len(observations) < max_iter:
            if self.should_stop():
                stopped = True
                break
            params: Mapping[str, Any] = self.acquire_next(space, observations)
            fitness = self.evaluate_batch(evaluator, [params])[0]
            observations.append(Candidate(dict(params), fitness, iteration=len(observations) + 1, kind="bayesian"))
            if (len(observations) - 1) % self.cfg.progress_interval == 0:
                self._emit_progress(len(observations), max_iter)

        best = best_candidate(observations)
        return self._result(
            best_parameters=dict(best.parameters) if best else {},
            best_fitness=best.fitness if best else float("-inf"),
            iterations=len(observations),
            convergence_history=[c.fitness for c in observations],
            all_results=observations,
            stopped=stopped,
            summary={"initial_samples": n_init},
        )
