"""
Stratified train/test splitting of a survey Dataset.
"""

import numbers
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import pandas as pd

from ..errors import InvalidProportionError, SchemaError, StratificationError
from ..utils.logging import get_logger
from .dataset import Dataset

logger = get_logger(__name__)


@dataclass(frozen=True)
class Split:
    """Disjoint, exhaustive partition of a Dataset into train and test."""

    train: Dataset
    test: Dataset
    prop: float
    strata: str
    seed: int

    @property
    def n_train(self) -> int:
        return self.train.n_rows

    @property
    def n_test(self) -> int:
        return self.test.n_rows

    def config(self) -> Dict[str, Any]:
        return {"prop": self.prop, "strata": self.strata, "seed": self.seed}


def make_strata(dataset: Dataset, field: str, bins: int) -> np.ndarray:
    """
    Stratum label for every record, in dataset order.

    Categorical and ordinal fields are used level by level. Numeric fields
    are cut into `bins` quantile groups first (fewer if quantiles coincide).
    """
    schema = dataset.schema
    if field not in schema:
        raise SchemaError(f"Unknown stratification field '{field}'")

    values = dataset.column(field)
    if values.isna().any():
        raise StratificationError(
            field,
            message=(
                f"Stratification field '{field}' has {int(values.isna().sum())} "
                f"missing value(s)"
            ),
        )

    if schema[field] == "numeric":
        binned = pd.qcut(values, q=bins, labels=False, duplicates="drop")
        return np.asarray(binned, dtype=int)

    return np.asarray(values.astype(str))


def _level_positions(strata: np.ndarray) -> Dict[Any, np.ndarray]:
    levels = sorted(pd.unique(strata).tolist(), key=str)
    return {level: np.flatnonzero(strata == level) for level in levels}


def initial_split(
    dataset: Dataset,
    prop: float,
    strata: str,
    seed: int,
    strata_bins: int = 4,
) -> Split:
    """
    Split a dataset into training and test subsets, stratified by a field.

    Within every stratification level the rows are shuffled and
    round(prop * n_level) of them go to the training subset, so each level's
    train/test ratio matches `prop` up to rounding.

    Args:
        dataset: Survey dataset
        prop: Proportion of records assigned to training, in (0, 1)
        strata: Stratification field
        seed: Random seed; the split is deterministic for a fixed seed
        strata_bins: Quantile bins used when `strata` is numeric

    Returns:
        Split with train and test datasets

    Raises:
        InvalidProportionError: If prop is not in (0, 1)
        StratificationError: If a level has fewer than 2 records
    """
    if isinstance(prop, (bool, np.bool_)) or not isinstance(prop, numbers.Real) or not 0 < prop < 1:
        raise InvalidProportionError(prop)
    prop = float(prop)

    labels = make_strata(dataset, strata, strata_bins)
    groups = _level_positions(labels)

    for level, positions in groups.items():
        if len(positions) < 2:
            raise StratificationError(strata, level, len(positions))

    rng = np.random.RandomState(seed)
    train_positions = []
    test_positions = []

    for level, positions in groups.items():
        n_level = len(positions)
        n_train = int(min(max(round(prop * n_level), 1), n_level - 1))
        shuffled = rng.permutation(positions)
        train_positions.append(shuffled[:n_train])
        test_positions.append(shuffled[n_train:])

    train_idx = np.sort(np.concatenate(train_positions))
    test_idx = np.sort(np.concatenate(test_positions))

    logger.info(
        f"Split {dataset.n_rows} records into {len(train_idx)} train / "
        f"{len(test_idx)} test across {len(groups)} '{strata}' strata"
    )

    return Split(
        train=dataset.subset(train_idx),
        test=dataset.subset(test_idx),
        prop=float(prop),
        strata=strata,
        seed=seed,
    )
