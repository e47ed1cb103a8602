"""
Local search strategies for the optimizer.

A strategy proposes a neighbour of the current parameter set and decides
whether to move there given both scores.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Sequence

import numpy as np

from ..core.models import StrategyParams
from .space import ParamSpace


def _nearest_index(values: Sequence, value) -> int:
    diffs = [abs(v - value) for v in values]
    return int(np.argmin(diffs))


def neighbour(current: StrategyParams, space: ParamSpace, rng: np.random.Generator) -> StrategyParams:
    """Move one randomly chosen parameter to an adjacent value in its axis."""
    movable = [(name, values) for name, values in space.axes().items() if len(values) > 1]
    if not movable:
        return current

    name, values = movable[int(rng.integers(len(movable)))]
    idx = _nearest_index(values, getattr(current, name))
    step = 1 if rng.random() < 0.5 else -1
    if not 0 <= idx + step < len(values):
        step = -step
    return replace(current, **{name: values[idx + step]})


class LocalSearch(ABC):
    """Base class for neighbourhood search strategies."""

    name = "local"

    def propose(self, current: StrategyParams, space: ParamSpace, rng: np.random.Generator) -> StrategyParams:
        return neighbour(current, space, rng)

    @abstractmethod
    def accept(
        self,
        current_score: float,
        candidate_score: float,
        step: int,
        rng: np.random.Generator
    ) -> bool:
        """Return True to move to the candidate."""


class HillClimbing(LocalSearch):
    """Move only on strict improvement."""

    name = "hill"

    def accept(self, current_score, candidate_score, step, rng) -> bool:
        return candidate_score > current_score


class SimulatedAnnealing(LocalSearch):
    """
    Accept worse candidates with probability exp(delta / T).

    T starts at ``initial_temperature`` and is multiplied by ``cooling`` every
    step, never dropping below ``min_temperature``.
    """

    name = "anneal"

    def __init__(
        self,
        initial_temperature: float = 100.0,
        cooling: float = 0.95,
        min_temperature: float = 1e-6
    ):
        if initial_temperature <= 0 or not 0 < cooling <= 1:
            raise ValueError("initial_temperature must be > 0 and cooling in (0, 1]")
        self.initial_temperature = initial_temperature
        self.cooling = cooling
        self.min_temperature = min_temperature

    def temperature(self, step: int) -> float:
        return max(self.initial_temperature * self.cooling ** step, self.min_temperature)

    def accept(self, current_score, candidate_score, step, rng) -> bool:
        if candidate_score >= current_score:
            return True
        delta = candidate_score - current_score
        if not math.isfinite(delta):
            return False
        return rng.random() < math.exp(delta / self.temperature(step))
