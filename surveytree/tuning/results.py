"""
Tuning results: per-(grid point, resample) fit results and their summary.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..errors import InsufficientDataError
from .grid import Grid, GridPoint


@dataclass(frozen=True)
class FitResult:
    """Metric of one grid point on one resample; NaN with an error when the fit failed."""

    grid_index: int
    resample_id: str
    value: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(np.isfinite(self.value))


class TuningTable:
    """
    Fit results keyed by (grid point, resample) and per-grid-point summaries.

    Results are sorted by key on construction, so the table and every
    statistic derived from it are independent of insertion order. A grid
    point whose every resample failed is excluded and carries an
    InsufficientDataError in `failures`.
    """

    def __init__(
        self,
        grid: Grid,
        metric: str,
        results: Iterable[FitResult],
        resample_ids: Sequence[str],
    ) -> None:
        self.grid = grid
        self.metric = metric
        self.resample_ids = tuple(resample_ids)

        ordered = sorted(results, key=lambda r: (r.grid_index, r.resample_id))
        keys = [(r.grid_index, r.resample_id) for r in ordered]
        if len(set(keys)) != len(keys):
            raise ValueError("Duplicate (grid point, resample) results in tuning table")

        unknown = sorted({r.grid_index for r in ordered} - {g.index for g in grid})
        if unknown:
            raise ValueError(f"Results reference grid points not in the grid: {unknown}")

        self._results = self._results_frame(ordered)
        self.failures: Dict[int, InsufficientDataError] = {}
        self._summary = self._summarize()

    @classmethod
    def merge(
        cls,
        grid: Grid,
        metric: str,
        partials: Iterable[Sequence[FitResult]],
        resample_ids: Sequence[str],
    ) -> "TuningTable":
        """Combine per-worker partial result lists into one table."""
        combined: List[FitResult] = []
        for partial in partials:
            combined.extend(partial)
        return cls(grid, metric, combined, resample_ids)

    def _results_frame(self, ordered: List[FitResult]) -> pd.DataFrame:
        names = self.grid.parameter_names
        rows = []
        for r in ordered:
            point = self.grid[r.grid_index]
            rows.append({
                "grid_index": r.grid_index,
                "config_id": point.config_id,
                **point.as_dict(),
                "resample_id": r.resample_id,
                "value": r.value if r.ok else np.nan,
                "error": r.error if r.error is not None else (None if r.ok else "non-finite metric"),
            })
        columns = ["grid_index", "config_id", *names, "resample_id", "value", "error"]
        return pd.DataFrame(rows, columns=columns)

    def _summarize(self) -> pd.DataFrame:
        rows = []
        results = self._results
        for point in self.grid:
            point_results = results[results["grid_index"] == point.index]
            values = point_results["value"].dropna().to_numpy(dtype=float)
            n = len(values)
            n_failed = int(len(point_results) - n)

            mean = float(values.sum() / n) if n else np.nan
            std_err = float(np.std(values, ddof=1) / np.sqrt(n)) if n > 1 else np.nan

            reason = None
            if n == 0:
                error = InsufficientDataError(
                    point.config_id,
                    point.as_dict(),
                    [e for e in point_results["error"].dropna()],
                )
                self.failures[point.index] = error
                reason = str(error)

            rows.append({
                "grid_index": point.index,
                "config_id": point.config_id,
                **point.as_dict(),
                "metric": self.metric,
                "mean": mean,
                "std_err": std_err,
                "n": n,
                "n_failed": n_failed,
                "excluded": n == 0,
                "reason": reason,
            })
        return pd.DataFrame(rows).set_index("grid_index")

    @property
    def results(self) -> pd.DataFrame:
        """Long table: one row per (grid point, resample)."""
        return self._results.copy()

    @property
    def summary(self) -> pd.DataFrame:
        """One row per grid point with mean, std_err, n and exclusion flag."""
        return self._summary.copy()

    @property
    def n_results(self) -> int:
        return len(self._results)

    def valid_points(self) -> List[GridPoint]:
        """Grid points with at least one successful resample."""
        return [g for g in self.grid if g.index not in self.failures]

    def exclusion_messages(self) -> List[str]:
        """One line per excluded grid point, naming it and why it failed."""
        return [
            f"Excluding {self.grid[index].config_id} from selection: {error}"
            for index, error in sorted(self.failures.items())
        ]

    def __len__(self) -> int:
        return len(self._summary)

    def __repr__(self) -> str:
        return (
            f"TuningTable(metric={self.metric}, grid_points={len(self.grid)}, "
            f"resamples={len(self.resample_ids)}, excluded={len(self.failures)})"
        )
