from stratforge.optimization.base import Candidate, OptimizationResult, SearchStrategy, summarize_fitness
from stratforge.optimization.bayesian import BayesianOptimizer
from stratforge.optimization.evaluator import BacktestEvaluator, evaluate
from stratforge.optimization.fitness import FITNESS_FUNCTIONS, resolve_fitness
from stratforge.optimization.genetic import GeneticAlgorithm
from stratforge.optimization.grid_search import GridSearch
from stratforge.optimization.random_search import RandomSearch
from stratforge.optimization.space import ParameterSpace, ParamSpec

SEARCH_STRATEGIES: dict[str, type[SearchStrategy]] = {
    "grid": GridSearch,
    "random": RandomSearch,
    "genetic": GeneticAlgorithm,
    "bayesian": BayesianOptimizer,
}

__all__ = [
    "BacktestEvaluator",
    "BayesianOptimizer",
    "Candidate",
    "FITNESS_FUNCTIONS",
    "GeneticAlgorithm",
    "GridSearch",
    "OptimizationResult",
    "ParamSpec",
    "ParameterSpace",
    "RandomSearch",
    "SEARCH_STRATEGIES",
    "SearchStrategy",
    "evaluate",
    "resolve_fitness",
    "summarize_fitness",
]
