"""
Grid-search tuning of the regression tree over bootstrap resamples.

Every (grid point, resample) pair is fitted on the resample's analysis rows
and scored on its assessment rows. Work is dispatched one task per resample
to a joblib pool; each task returns its own partial list of results and the
partials are merged into a TuningTable once every task has finished.
"""

from typing import Any, Dict, List, Optional, Sequence, Type

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from ..data.dataset import Dataset
from ..data.resampling import Resample, ResampleCollection
from ..evaluation.metrics import get_metric
from ..models.base_model import BaseModel
from ..models.tree_model import RegressionTreeModel
from ..utils.logging import LoggingMixin, get_logger
from .grid import Grid, GridPoint
from .results import FitResult, TuningTable


def fit_resample(
    X: pd.DataFrame,
    y: pd.Series,
    resample: Resample,
    grid_points: Sequence[GridPoint],
    model_class: Type[BaseModel],
    model_kwargs: Dict[str, Any],
    metric_name: str,
) -> List[FitResult]:
    """
    Fit and score every grid point on one resample.

    A failure on one grid point is recorded as a missing observation with
    its error message; the remaining grid points still run.
    """
    logger = get_logger("tuning.worker")
    metric = get_metric(metric_name)

    X_analysis, y_analysis = X.iloc[resample.analysis], y.iloc[resample.analysis]
    X_assessment, y_assessment = X.iloc[resample.assessment], y.iloc[resample.assessment]

    results = []
    for point in grid_points:
        try:
            model = model_class(**model_kwargs, **point.as_dict())
            model.fit(X_analysis, y_analysis)
            value = metric(y_assessment, model.predict(X_assessment))
            if not np.isfinite(value):
                raise ValueError(f"{metric.name} is not finite")
            results.append(FitResult(point.index, resample.id, float(value)))
        except Exception as e:
            logger.debug(f"{point.config_id} on {resample.id} failed: {e}")
            results.append(FitResult(
                point.index, resample.id, float("nan"), f"{type(e).__name__}: {e}"
            ))

    return results


class GridTuner(LoggingMixin):
    """
    Grid-search tuner for surveytree models.

    Features:
    - Exhaustive evaluation of a regular grid over bootstrap resamples
    - Parallel fits on a joblib worker pool
    - Local recovery from single-fit failures
    - Exclusion (with a warning) of grid points that never fit
    """

    def __init__(
        self,
        outcome: str,
        predictors: Sequence[str],
        metric: str = "rmse",
        model_class: Type[BaseModel] = RegressionTreeModel,
        model_kwargs: Optional[Dict[str, Any]] = None,
        n_jobs: int = 1,
        random_state: int = 42,
        parallel: Optional[Parallel] = None,
        show_progress: bool = False,
    ) -> None:
        """
        Initialize grid tuner.

        Args:
            outcome: Outcome field
            predictors: Predictor fields
            metric: Metric scored on assessment rows
            model_class: BaseModel subclass accepting the grid's parameters
            model_kwargs: Fixed keyword arguments for every model
            n_jobs: Worker count when no pool is supplied
            random_state: Seed passed to every model
            parallel: Open joblib Parallel pool owned by the caller
            show_progress: Show a progress bar while dispatching resamples
        """
        get_metric(metric)

        self.outcome = outcome
        self.predictors = list(predictors)
        self.metric = metric
        self.model_class = model_class
        self.model_kwargs = {"random_state": random_state, **(model_kwargs or {})}
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.parallel = parallel
        self.show_progress = show_progress

        self.table: Optional[TuningTable] = None

    def tune(self, train: Dataset, resamples: ResampleCollection, grid: Grid) -> TuningTable:
        """
        Fit and score every (grid point, resample) pair.

        Args:
            train: Training subset the resamples were drawn from
            resamples: Bootstrap resamples of `train`
            grid: Hyperparameter grid

        Returns:
            TuningTable with one result per pair
        """
        if resamples.n_rows != train.n_rows:
            raise ValueError(
                f"Resamples were drawn from {resamples.n_rows} rows but the "
                f"training subset has {train.n_rows}"
            )

        self.log_info(
            f"Tuning {len(grid)} grid points x {len(resamples)} resamples "
            f"({len(grid) * len(resamples)} fits) on {self.metric}"
        )

        X = train.design_matrix(self.predictors)
        y = train.outcome_vector(self.outcome)
        points = tuple(grid)

        tasks = (
            delayed(fit_resample)(
                X, y, resample, points, self.model_class, self.model_kwargs, self.metric
            )
            for resample in tqdm(resamples, desc="Resamples", disable=not self.show_progress)
        )

        if self.parallel is not None:
            partials = self.parallel(tasks)
        else:
            with Parallel(n_jobs=self.n_jobs) as parallel:
                partials = parallel(tasks)

        table = TuningTable.merge(grid, self.metric, partials, resamples.ids)

        n_failed = int(table.results["value"].isna().sum())
        if n_failed:
            self.log_info(f"{n_failed} of {table.n_results} fits failed and were recorded as missing")

        for message in table.exclusion_messages():
            self.log_warning(message)

        self.table = table
        self.log_info(f"Tuning completed: {len(table.valid_points())} of {len(grid)} grid points usable")
        return table
