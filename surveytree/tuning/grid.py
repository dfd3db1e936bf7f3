"""
Regular hyperparameter grids for the regression tree.
"""

import itertools
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..errors import GridError


@dataclass(frozen=True)
class Parameter:
    """
    One tunable hyperparameter.

    `low` and `high` are given on the transformed scale: a log10 parameter
    with range (-10, -1) spans 1e-10 to 1e-1. `simpler` says which end of the
    range gives the simpler model.
    """

    name: str
    low: float
    high: float
    transform: str = "identity"
    integer: bool = False
    simpler: str = "higher"

    def values(self, levels: int) -> Tuple[Union[int, float], ...]:
        """`levels` candidate values spaced evenly on the transformed scale."""
        if isinstance(levels, bool) or not isinstance(levels, (int, np.integer)) or levels < 1:
            raise GridError(f"Parameter '{self.name}' needs a positive level count, got: {levels!r}")
        if self.low > self.high:
            raise GridError(f"Parameter '{self.name}' has low > high: {self.low} > {self.high}")

        spaced = np.linspace(self.low, self.high, int(levels))
        if self.transform == "log10":
            spaced = 10.0 ** spaced
        elif self.transform != "identity":
            raise GridError(f"Parameter '{self.name}' has unknown transform '{self.transform}'")

        if self.integer:
            candidates = tuple(int(v) for v in np.round(spaced))
        else:
            candidates = tuple(float(v) for v in spaced)

        if len(set(candidates)) != len(candidates):
            raise GridError(
                f"Parameter '{self.name}' yields duplicate values with {levels} levels "
                f"over [{self.low}, {self.high}]: {list(candidates)}"
            )
        return candidates

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "range": [self.low, self.high],
            "transform": self.transform,
            "integer": self.integer,
            "simpler": self.simpler,
        }


COST_COMPLEXITY = Parameter("cost_complexity", -10.0, -1.0, transform="log10", simpler="higher")
MIN_N = Parameter("min_n", 2.0, 40.0, transform="identity", integer=True, simpler="higher")

DEFAULT_PARAMETERS: Tuple[Parameter, ...] = (COST_COMPLEXITY, MIN_N)
KNOWN_PARAMETERS = {p.name: p for p in DEFAULT_PARAMETERS}


def parameters_from_config(section: Mapping[str, Mapping[str, Any]]) -> Tuple[Parameter, ...]:
    """
    Build tree parameters from the `grid.parameters` config section.

    Only the range and transform are configurable; integer-ness and the
    simplicity direction belong to the parameter itself.
    """
    parameters = []
    for name, options in section.items():
        if name not in KNOWN_PARAMETERS:
            raise GridError(f"Unknown tree parameter '{name}'. Choose from: {list(KNOWN_PARAMETERS)}")
        low, high = options["range"]
        base = KNOWN_PARAMETERS[name]
        parameters.append(Parameter(
            name=name,
            low=float(low),
            high=float(high),
            transform=options["transform"],
            integer=base.integer,
            simpler=base.simpler,
        ))
    return tuple(parameters)


@dataclass(frozen=True)
class GridPoint:
    """A concrete value for every tuned hyperparameter."""

    index: int
    values: Tuple[Tuple[str, Union[int, float]], ...]

    @property
    def config_id(self) -> str:
        return f"Model{self.index + 1:02d}"

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.values)

    def __getitem__(self, name: str) -> Union[int, float]:
        for key, value in self.values:
            if key == name:
                return value
        raise KeyError(name)

    def as_dict(self) -> Dict[str, Union[int, float]]:
        return dict(self.values)


@dataclass(frozen=True)
class Grid:
    """Ordered cross product of per-parameter candidate values."""

    parameters: Tuple[Parameter, ...]
    levels: Tuple[int, ...]
    points: Tuple[GridPoint, ...]

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[GridPoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> GridPoint:
        return self.points[index]

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.parameters)

    def to_frame(self) -> pd.DataFrame:
        rows = [{"config_id": g.config_id, **g.as_dict()} for g in self.points]
        return pd.DataFrame(rows, index=pd.Index([g.index for g in self.points], name="grid_index"))

    def definition(self) -> Dict[str, Any]:
        """JSON-friendly description, used in cache keys."""
        return {
            "parameters": [p.to_dict() for p in self.parameters],
            "levels": list(self.levels),
        }


def regular_grid(
    parameters: Sequence[Parameter] = DEFAULT_PARAMETERS,
    levels: Union[int, Mapping[str, int]] = 4,
) -> Grid:
    """
    Enumerate a regular grid over the given parameters.

    Args:
        parameters: Parameters to tune
        levels: Candidate count for every parameter, or a per-parameter mapping

    Returns:
        Grid whose size is the product of the level counts

    Raises:
        GridError: If a level count is invalid or a parameter repeats a value
    """
    parameters = tuple(parameters)
    if not parameters:
        raise GridError("At least one parameter is required")

    names = [p.name for p in parameters]
    if len(set(names)) != len(names):
        raise GridError(f"Duplicate parameter names: {names}")

    if isinstance(levels, Mapping):
        missing = [name for name in names if name not in levels]
        if missing:
            raise GridError(f"No level count for parameters: {missing}")
        counts = tuple(levels[name] for name in names)
    else:
        counts = tuple(levels for _ in names)

    candidates = [p.values(n) for p, n in zip(parameters, counts)]

    points = tuple(
        GridPoint(index=i, values=tuple(zip(names, combo)))
        for i, combo in enumerate(itertools.product(*candidates))
    )

    return Grid(parameters=parameters, levels=tuple(int(n) for n in counts), points=points)
