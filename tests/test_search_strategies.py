import math

import pytest

from stratforge.common.config.schema import OptimizerConfig
from stratforge.common.errors import ConfigurationError
from stratforge.common.events import CollectingEventSink
from stratforge.common.utils.cancel import StopToken
from stratforge.optimization.base import Candidate, summarize_fitness
from stratforge.optimization.bayesian import BayesianOptimizer
from stratforge.optimization.genetic import GeneticAlgorithm
from stratforge.optimization.grid_search import GridSearch
from stratforge.optimization.random_search import RandomSearch
from stratforge.optimization.space import ParameterSpace

SPACE_X = ParameterSpace.from_mapping({"x": {"type": "integer", "min": 0, "max": 20}})


def peak_at_seven(params):
    return -float((params["x"] - 7) ** 2)


def test_grid_search_picks_highest_fitness():
    space = ParameterSpace.from_mapping({"x": {"type": "integer", "min": 0, "max": 2, "step": 1}})
    result = GridSearch(OptimizerConfig(parallel_evaluations=1)).optimize(space, lambda p: float(p["x"]))
    assert result.best_parameters == {"x": 2}
    assert result.best_fitness == 2.0
    assert result.iterations == 3


def test_grid_search_evaluates_every_combination_once():
    space = ParameterSpace.from_mapping(
        {"a": {"type": "integer", "min": 0, "max": 4}, "b": {"type": "choice", "choices": ["p", "q", "r"]}}
    )
    seen = []

    def evaluator(params):
        seen.append((params["a"], params["b"]))
        return float(params["a"])

    result = GridSearch(OptimizerConfig(parallel_evaluations=3)).optimize(space, evaluator)
    assert len(seen) == 15 == len(set(seen))
    assert [c.parameters for c in result.all_results] == list(space.grid())
    assert result.summary["total_combinations"] == 15
    # 并列时取先出现的组合
    assert result.best_parameters == {"a": 4, "b": "p"}


def test_grid_search_respects_max_combinations():
    with pytest.raises(ConfigurationError):
        GridSearch(OptimizerConfig(max_combinations=10)).optimize(SPACE_X, peak_at_seven)


def test_grid_search_stop_returns_partial():
    token = StopToken()
    calls = []

    def evaluator(params):
        calls.append(params["x"])
        token.request_stop()
        return float(params["x"])

    result = GridSearch(OptimizerConfig(parallel_evaluations=2), stop_token=token).optimize(SPACE_X, evaluator)
    assert result.stopped
    assert result.iterations == 2
    assert result.best_parameters == {"x": 1}


def test_random_search_is_seeded_and_independent_of_parallelism():
    seq = RandomSearch(OptimizerConfig(random_iterations=25, seed=5, parallel_evaluations=1)).optimize(SPACE_X, peak_at_seven)
    par = RandomSearch(OptimizerConfig(random_iterations=25, seed=5, parallel_evaluations=4)).optimize(SPACE_X, peak_at_seven)
    assert [c.parameters for c in seq.all_results] == [c.parameters for c in par.all_results]
    assert seq.iterations == 25
    assert seq.best_fitness == max(c.fitness for c in seq.all_results)


def test_random_search_emits_progress():
    sink = CollectingEventSink()
    RandomSearch(OptimizerConfig(random_iterations=30, seed=1, progress_interval=10), event_sink=sink).optimize(
        SPACE_X, peak_at_seven
    )
    assert [e["completed"] for e in sink.of("evaluation_progress")] == [1, 11, 21]


def test_genetic_keeps_population_size_and_elitist_best():
    cfg = OptimizerConfig(population_size=12, generations=15, seed=3, parallel_evaluations=1, max_stagnant_generations=50)
    result = GeneticAlgorithm(cfg).optimize(SPACE_X, peak_at_seven)
    assert len(result.final_population) == 12
    best_series = [h["best_fitness"] for h in result.convergence_history]
    assert best_series == sorted(best_series)
    assert result.best_fitness == result.final_population[0].fitness
    assert result.best_fitness == peak_at_seven(result.best_parameters)


def test_genetic_is_reproducible_with_seed():
    cfg = OptimizerConfig(population_size=10, generations=5, seed=9, parallel_evaluations=2)
    a = GeneticAlgorithm(cfg).optimize(SPACE_X, peak_at_seven)
    b = GeneticAlgorithm(cfg).optimize(SPACE_X, peak_at_seven)
    assert a.best_parameters == b.best_parameters
    assert a.convergence_history == b.convergence_history


def test_next_generation_preserves_elites():
    cfg = OptimizerConfig(population_size=10, elitism_rate=0.2, seed=1)
    ga = GeneticAlgorithm(cfg)
    ranked = [Candidate({"x": x}, float(100 - x)) for x in range(10)]
    nxt = ga.next_generation(ranked, SPACE_X)
    assert len(nxt) == 10
    assert [c.parameters for c in nxt[:2]] == [{"x": 0}, {"x": 1}]
    assert [c.fitness for c in nxt[:2]] == [100.0, 99.0]
    assert all(c.fitness is None for c in nxt[2:])


def test_genetic_converges_on_flat_fitness():
    cfg = OptimizerConfig(population_size=6, generations=100, seed=2)
    result = GeneticAlgorithm(cfg).optimize(SPACE_X, lambda p: 1.0)
    assert result.converged
    assert result.iterations == 10


def test_genetic_stop_between_generations():
    token = StopToken()

    class StopAfterFirst:
        def emit(self, event, payload):
            if event == "generation_completed":
                token.request_stop()

    cfg = OptimizerConfig(population_size=8, generations=20, seed=4)
    result = GeneticAlgorithm(cfg, stop_token=token, event_sink=StopAfterFirst()).optimize(SPACE_X, peak_at_seven)
    assert result.stopped
    assert result.iterations == 1
    assert len(result.final_population) == 8


def test_diversity_zero_for_identical_population():
    pop = [Candidate({"x": 3}) for _ in range(5)]
    assert GeneticAlgorithm.diversity(pop, SPACE_X) == 0.0
    assert GeneticAlgorithm.diversity([Candidate({"x": 0}), Candidate({"x": 2})], SPACE_X) == 1.0


def test_bayesian_initial_samples_and_total_iterations():
    cfg = OptimizerConfig(bayesian_iterations=12, candidate_samples=50, seed=3)
    opt = BayesianOptimizer(cfg)
    assert opt.initial_samples() == 3
    result = opt.optimize(SPACE_X, peak_at_seven)
    kinds = [c.kind for c in result.all_results]
    assert kinds == ["random"] * 3 + ["bayesian"] * 9
    assert result.summary["initial_samples"] == 3
    assert result.best_fitness == max(c.fitness for c in result.all_results)
    assert BayesianOptimizer(OptimizerConfig(bayesian_iterations=100)).initial_samples() == 10


def test_bayesian_reproducible_with_seed():
    cfg = OptimizerConfig(bayesian_iterations=10, candidate_samples=30, seed=21)
    a = BayesianOptimizer(cfg).optimize(SPACE_X, peak_at_seven)
    b = BayesianOptimizer(cfg).optimize(SPACE_X, peak_at_seven)
    assert [c.parameters for c in a.all_results] == [c.parameters for c in b.all_results]


def test_bayesian_survives_all_invalid_evaluations():
    cfg = OptimizerConfig(bayesian_iterations=6, candidate_samples=10, seed=0)
    result = BayesianOptimizer(cfg).optimize(SPACE_X, lambda p: -math.inf)
    assert result.iterations == 6
    assert result.best_fitness == -math.inf
    assert result.summary["invalid"] == 6


def test_summarize_fitness_ignores_invalid_values():
    stats = summarize_fitness([1.0, -math.inf, 3.0, float("nan")])
    assert stats["evaluations"] == 4
    assert stats["valid"] == 2 and stats["invalid"] == 2
    assert stats["best"] == 3.0 and stats["worst"] == 1.0 and stats["average"] == 2.0
