"""
Selection of the best grid point from a TuningTable.
"""

from typing import List, Mapping

import numpy as np
import pandas as pd

from ..errors import EmptyTuningTableError
from ..evaluation.metrics import get_metric
from ..utils.logging import get_logger
from .grid import GridPoint
from .results import TuningTable

logger = get_logger(__name__)


def _simplicity_keys(frame: pd.DataFrame, simpler: Mapping[str, str]) -> List[pd.Series]:
    # Sort keys where smaller means simpler, in parameter order.
    keys = []
    for name, direction in simpler.items():
        values = frame[name].astype(float)
        keys.append(-values if direction == "higher" else values)
    return keys


def _sorted(
    frame: pd.DataFrame,
    minimize: bool,
    simpler: Mapping[str, str],
    simplicity_first: bool = False,
) -> pd.DataFrame:
    """Order by mean metric and simplicity (either first), then by grid index."""
    metric_key = frame["mean"] if minimize else -frame["mean"]
    simplicity = _simplicity_keys(frame, simpler)

    keys = simplicity + [metric_key] if simplicity_first else [metric_key] + simplicity
    sort_frame = pd.DataFrame({f"_k{i}": key for i, key in enumerate(keys)}, index=frame.index)
    sort_frame["_index"] = frame.index.to_numpy()

    order = sort_frame.sort_values(list(sort_frame.columns), kind="mergesort").index
    return frame.loc[order]


def rank_summary(
    summary: pd.DataFrame,
    metric: str,
    simpler: Mapping[str, str],
    one_std_err: bool = False,
) -> pd.DataFrame:
    """
    Valid rows of a tuning summary in selection order.

    Without the one-standard-error rule, rows are ordered by mean metric
    with ties going to the simpler model. With it, every row whose mean is
    within one standard error of the best comes first, simplest first, and
    the remaining rows follow by mean.

    Args:
        summary: Summary indexed by grid index, as TuningTable.summary
        metric: Metric name the means were scored on
        simpler: Parameter name -> 'higher' | 'lower', in parameter order
        one_std_err: Apply the one-standard-error rule

    Raises:
        EmptyTuningTableError: If no row has a successful resample
    """
    valid = summary[~summary["excluded"].astype(bool)]
    if valid.empty:
        raise EmptyTuningTableError(
            f"No valid grid points to select from ({len(summary)} excluded)"
        )

    minimize = get_metric(metric).minimize
    ordered = _sorted(valid, minimize, simpler)
    if not one_std_err:
        return ordered

    best = ordered.iloc[0]
    std_err = 0.0 if np.isnan(best["std_err"]) else float(best["std_err"])
    if minimize:
        within = ordered["mean"] <= best["mean"] + std_err
    else:
        within = ordered["mean"] >= best["mean"] - std_err

    return pd.concat([
        _sorted(ordered[within], minimize, simpler, simplicity_first=True),
        ordered[~within],
    ])


def rank_grid_points(table: TuningTable, one_std_err: bool = False) -> pd.DataFrame:
    """Valid grid points of a tuning table in selection order (see rank_summary)."""
    simpler = {p.name: p.simpler for p in table.grid.parameters}
    return rank_summary(table.summary, table.metric, simpler, one_std_err=one_std_err)


def select_best(table: TuningTable, k: int = 1, one_std_err: bool = False) -> List[GridPoint]:
    """
    Pick the top `k` grid points.

    Args:
        table: Tuning results
        k: Number of grid points to return
        one_std_err: Prefer the simplest model within one standard error of
            the best mean

    Returns:
        Up to `k` grid points, best first

    Raises:
        EmptyTuningTableError: If no grid point is valid
    """
    if k < 1:
        raise ValueError(f"k must be >= 1, got: {k}")

    ranked = rank_grid_points(table, one_std_err=one_std_err)
    chosen = [table.grid[int(index)] for index in ranked.index[:k]]

    best = ranked.iloc[0]
    logger.info(
        f"Selected {chosen[0].config_id} {chosen[0].as_dict()} with mean "
        f"{table.metric}={best['mean']:.4f}"
        + (" (one-standard-error rule)" if one_std_err else "")
    )
    return chosen


def show_best(table: TuningTable, n: int = 5, one_std_err: bool = False) -> pd.DataFrame:
    """Top `n` rows of the summary in selection order."""
    return rank_grid_points(table, one_std_err=one_std_err).head(n)
