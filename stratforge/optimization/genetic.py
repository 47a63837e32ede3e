"""遗传算法。

每一代：评估种群（批内可并发，整代评估完成后才排序/选择）-> 按 fitness 降序 ->
保留前 `floor(P * elitism_rate)` 个精英（原样进入下一代，不重复评估）->
锦标赛选择两个父代，按 crossover_rate 均匀交叉（否则直接复制），
再以 mutation_rate 触发变异（每个参数 10% 概率重新采样，布尔值取反）。

停止条件：最近 10 代最佳 fitness 变化小于 convergence_threshold、
连续 max_stagnant_generations 代无改进、达到 generations 上限，或收到 stop。
"""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np

from stratforge.optimization.base import Candidate, Evaluator, OptimizationResult, SearchStrategy
from stratforge.optimization.space import ParameterSpace

# 变异触发后每个参数被重抽的概率
GENE_MUTATION_PROB = 0.1
CONVERGENCE_WINDOW = 10


class GeneticAlgorithm(SearchStrategy):
    method = "genetic"

    # ------------------------------------------------------------------ operators
    def initialize_population(self, space: ParameterSpace) -> list[Candidate]:
        return [Candidate(space.sample(self.rng)) for _ in range(self.cfg.population_size)]

    def tournament_select(self, population: Sequence[Candidate]) -> Candidate:
        best = None
        for _ in range(self.cfg.tournament_size):
            cand = population[self.rng.randrange(len(population))]
            if best is None or cand.fitness > best.fitness:  # type: ignore[operator]
                best = cand
        return best  # type: ignore[return-value]

    def crossover(self, p1: Candidate, p2: Candidate, space: ParameterSpace) -> tuple[Candidate, Candidate]:
        c1: dict[str, Any] = {}
        c2: dict[str, Any] = {}
        for name in space.names:
            if self.rng.random() < 0.5:
                c1[name], c2[name] = p1.parameters[name], p2.parameters[name]
            else:
                c1[name], c2[name] = p2.parameters[name], p1.parameters[name]
        return Candidate(c1), Candidate(c2)

    def mutate(self, individual: Candidate, space: ParameterSpace) -> None:
        for spec in space:
            if self.rng.random() < GENE_MUTATION_PROB:
                if spec.type == "boolean":
                    individual.parameters[spec.name] = not individual.parameters[spec.name]
                else:
                    individual.parameters[spec.name] = spec.sample(self.rng)
                individual.fitness = None

    def next_generation(self, ranked: Sequence[Candidate], space: ParameterSpace) -> list[Candidate]:
        size = self.cfg.population_size
        elite_count = int(math.floor(size * self.cfg.elitism_rate))
        nxt = [Candidate(dict(c.parameters), c.fitness) for c in ranked[:elite_count]]

        while len(nxt) < size:
            p1 = self.tournament_select(ranked)
            p2 = self.tournament_select(ranked)
            if self.rng.random() < self.cfg.crossover_rate:
                o1, o2 = self.crossover(p1, p2, space)
            else:
                o1, o2 = Candidate(dict(p1.parameters)), Candidate(dict(p2.parameters))
            if self.rng.random() < self.cfg.mutation_rate:
                self.mutate(o1, space)
            if self.rng.random() < self.cfg.mutation_rate:
                self.mutate(o2, space)
            nxt.append(o1)
            if len(nxt) < size:
                nxt.append(o2)
        return nxt

    @staticmethod
    def diversity(population: Sequence[Candidate], space: ParameterSpace) -> float:
        """各参数（数值编码后）总体方差的均值。"""
        if not population or not len(space):
            return 0.0
        matrix = np.vstack([space.encode(c.parameters) for c in population])
        return float(np.mean(np.var(matrix, axis=0)))

    @staticmethod
    def has_converged(history: Sequence[dict[str, Any]], threshold: float) -> bool:
        if len(history) < CONVERGENCE_WINDOW:
            return False
        recent = history[-CONVERGENCE_WINDOW:]
        return abs(recent[-1]["best_fitness"] - recent[0]["best_fitness"]) < threshold

    # ------------------------------------------------------------------ main loop
    def optimize(self, space: ParameterSpace, evaluator: Evaluator) -> OptimizationResult:
        population = self.initialize_population(space)
        history: list[dict[str, Any]] = []
        best: Candidate | None = None
        ranked: list[Candidate] = []
        stagnant = 0
        stopped = converged = False

        for generation in range(self.cfg.generations):
            if self.should_stop():
                stopped = True
                break

            pending = [c for c in population if c.fitness is None]
            for cand, fitness in zip(pending, self.evaluate_batch(evaluator, [c.parameters for c in pending])):
                cand.fitness = fitness

            # sorted 稳定：同 fitness 保持原有顺序（精英在前）
            ranked = sorted(population, key=lambda c: c.fitness, reverse=True)
            current = ranked[0]
            if best is None or current.fitness > best.fitness:  # type: ignore[operator]
                best = Candidate(dict(current.parameters), current.fitness)
                stagnant = 0
            else:
                stagnant += 1

            fitnesses = [c.fitness for c in ranked]
            stats = {
                "generation": generation,
                "best_fitness": current.fitness,
                "average_fitness": sum(fitnesses) / len(fitnesses),
                "worst_fitness": min(fitnesses),
                "diversity": self.diversity(ranked, space),
            }
            history.append(stats)
            self.event_sink.emit("generation_completed", {**stats, "best_parameters": dict(current.parameters)})
            self.logger.debug("Generation %d: best=%.6f avg=%.6f", generation, current.fitness, stats["average_fitness"])

            if self.has_converged(history, self.cfg.convergence_threshold) or stagnant >= self.cfg.max_stagnant_generations:
                converged = True
                self.logger.info("Optimization converged at generation %d", generation)
                break
            if generation < self.cfg.generations - 1:
                population = self.next_generation(ranked, space)

        return self._result(
            best_parameters=dict(best.parameters) if best else {},
            best_fitness=best.fitness if best else float("-inf"),
            iterations=len(history),
            convergence_history=history,
            final_population=ranked,
            stopped=stopped,
            converged=converged,
            summary={"generations": len(history)},
        )
