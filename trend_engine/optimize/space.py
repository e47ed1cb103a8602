"""
Parameter space definition for optimization sweeps.
"""

import itertools
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterator, List, Mapping, Sequence

import numpy as np

from ..core.models import StrategyParams
from ..errors import InvalidParams

INT_FIELDS = ("short_length", "long_length", "signal_length", "channel_length")
FLOAT_FIELDS = ("entry_threshold", "exit_threshold")


def _expand(name: str, config: Any) -> List[Any]:
    """Turn a single parameter spec into a list of candidate values."""
    if isinstance(config, Mapping):
        kind = config.get("type", "int" if name in INT_FIELDS else "float")
        if kind == "categorical":
            return list(config["choices"])
        low, high = config["low"], config["high"]
        step = config.get("step")
        if kind == "int":
            return list(range(int(low), int(high) + 1, int(step or 1)))
        if kind == "float":
            if step:
                count = int(np.floor(round((high - low) / step, 9))) + 1
                return [round(low + i * step, 10) for i in range(count)]
            # Sample 5 points in range
            return np.linspace(low, high, 5).tolist()
        raise InvalidParams(f"Unknown parameter type for {name}: {kind}")
    if isinstance(config, (list, tuple, np.ndarray, range)):
        return list(config)
    return [config]


def _coerce(name: str, value: Any) -> Any:
    # numpy scalars fail StrategyParams.validate, so cast to builtins
    if name in INT_FIELDS:
        if float(value) != int(value):
            raise InvalidParams(f"{name} must be integral, got {value!r}")
        return int(value)
    return float(value)


@dataclass(frozen=True)
class ParamSpace:
    """Candidate values for each StrategyParams field."""
    short_length: Sequence[int]
    long_length: Sequence[int]
    signal_length: Sequence[int]
    entry_threshold: Sequence[float]
    exit_threshold: Sequence[float]
    channel_length: Sequence[int]

    def __post_init__(self):
        for f in fields(self):
            # order-preserving de-duplication
            values = tuple(dict.fromkeys(_coerce(f.name, v) for v in getattr(self, f.name)))
            if not values:
                raise InvalidParams(f"No candidate values for {f.name}")
            object.__setattr__(self, f.name, values)

    @classmethod
    def from_dict(cls, space: Mapping[str, Any]) -> "ParamSpace":
        """
        Build a space from a JSON-style mapping.

        Each entry may be a list of values, a single scalar, or a range spec
        ``{"type": "int"|"float", "low": .., "high": .., "step": ..}``.
        """
        missing = [f.name for f in fields(cls) if f.name not in space]
        if missing:
            raise InvalidParams(f"Parameter space is missing {missing}")
        unknown = sorted(set(space) - {f.name for f in fields(cls)})
        if unknown:
            raise InvalidParams(f"Unknown parameters in space: {unknown}")
        return cls(**{f.name: _expand(f.name, space[f.name]) for f in fields(cls)})

    def axes(self) -> Dict[str, tuple]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def __len__(self) -> int:
        total = 1
        for values in self.axes().values():
            total *= len(values)
        return total

    def combinations(self) -> Iterator[StrategyParams]:
        """Cartesian product in field order; invalid combinations included."""
        names = list(self.axes())
        for combo in itertools.product(*self.axes().values()):
            yield StrategyParams(**dict(zip(names, combo)))

    def sample(self, rng: np.random.Generator) -> StrategyParams:
        """Draw one combination uniformly from the space."""
        return StrategyParams(**{
            name: values[int(rng.integers(len(values)))]
            for name, values in self.axes().items()
        })
