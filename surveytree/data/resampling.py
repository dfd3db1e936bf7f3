"""
Stratified bootstrap resampling of a training subset.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np

from ..errors import DegenerateResampleError
from ..utils.logging import get_logger
from .dataset import Dataset
from .splitter import _level_positions, make_strata

logger = get_logger(__name__)


def _read_only(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=np.int64)
    values.setflags(write=False)
    return values


@dataclass(frozen=True, eq=False)
class Resample:
    """
    One bootstrap draw.

    `analysis` holds positions drawn with replacement (same size as the
    training subset); `assessment` holds the positions never drawn.
    """

    id: str
    analysis: np.ndarray
    assessment: np.ndarray

    def analysis_set(self, train: Dataset) -> Dataset:
        return train.subset(self.analysis)

    def assessment_set(self, train: Dataset) -> Dataset:
        return train.subset(self.assessment)


@dataclass(frozen=True, eq=False)
class ResampleCollection:
    """Ordered bootstrap resamples together with how they were drawn."""

    resamples: Tuple[Resample, ...]
    n_rows: int
    strata: str
    seed: int

    @property
    def times(self) -> int:
        return len(self.resamples)

    def __len__(self) -> int:
        return len(self.resamples)

    def __iter__(self) -> Iterator[Resample]:
        return iter(self.resamples)

    def __getitem__(self, index: int) -> Resample:
        return self.resamples[index]

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(r.id for r in self.resamples)


def bootstraps(
    train: Dataset,
    times: int,
    strata: str,
    seed: int,
    strata_bins: int = 4,
) -> ResampleCollection:
    """
    Draw stratified bootstrap resamples from a training subset.

    Within each stratification level, n_level positions are drawn with
    replacement, so level proportions carry over to every analysis set.

    Args:
        train: Training subset
        times: Number of bootstrap resamples
        strata: Stratification field
        seed: Random seed; identical inputs give identical resamples
        strata_bins: Quantile bins used when `strata` is numeric

    Returns:
        ResampleCollection of `times` resamples

    Raises:
        ValueError: If times < 1
        DegenerateResampleError: If a draw leaves no assessment rows
    """
    if isinstance(times, bool) or not isinstance(times, int) or times < 1:
        raise ValueError(f"Bootstrap count must be a positive integer, got: {times!r}")

    n_rows = train.n_rows
    groups = _level_positions(make_strata(train, strata, strata_bins))
    rng = np.random.RandomState(seed)
    width = len(str(times))

    resamples = []
    for b in range(times):
        resample_id = f"Bootstrap{b + 1:0{max(width, 2)}d}"
        analysis = np.concatenate([
            rng.choice(positions, size=len(positions), replace=True)
            for positions in groups.values()
        ])
        drawn = np.zeros(n_rows, dtype=bool)
        drawn[analysis] = True
        assessment = np.flatnonzero(~drawn)

        if len(assessment) == 0:
            raise DegenerateResampleError(resample_id, n_rows)

        resamples.append(Resample(
            id=resample_id,
            analysis=_read_only(analysis),
            assessment=_read_only(assessment),
        ))

    logger.info(f"Drew {times} stratified bootstrap resamples of {n_rows} records")

    return ResampleCollection(
        resamples=tuple(resamples),
        n_rows=n_rows,
        strata=strata,
        seed=seed,
    )
