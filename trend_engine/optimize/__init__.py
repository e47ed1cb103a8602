"""Parameter optimization framework."""

from .optimizer import Optimizer, OptimizationResult, RankedResult, optimize
from .scoring import SCORERS, get_scorer
from .search import HillClimbing, LocalSearch, SimulatedAnnealing
from .space import ParamSpace

__all__ = [
    "Optimizer",
    "OptimizationResult",
    "RankedResult",
    "optimize",
    "ParamSpace",
    "LocalSearch",
    "HillClimbing",
    "SimulatedAnnealing",
    "SCORERS",
    "get_scorer",
]
