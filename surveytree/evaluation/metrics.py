"""
Regression metrics used for tuning and final-fit diagnostics.
"""

from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error


def rmse(y_true, y_pred) -> float:
    """Root-mean-squared error."""
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def mae(y_true, y_pred) -> float:
    """Mean absolute error."""
    return float(mean_absolute_error(y_true, y_pred))


def rsq(y_true, y_pred) -> float:
    """
    Squared correlation between observed and predicted values.

    NaN when either side is constant (e.g. a tree with a single leaf).
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    if len(y_true) < 2 or np.std(y_true) == 0 or np.std(y_pred) == 0:
        return float("nan")
    return float(np.corrcoef(y_true, y_pred)[0, 1] ** 2)


@dataclass(frozen=True)
class Metric:
    name: str
    fn: Callable[..., float]
    direction: str  # "minimize" or "maximize"

    @property
    def minimize(self) -> bool:
        return self.direction == "minimize"

    def __call__(self, y_true, y_pred) -> float:
        return self.fn(y_true, y_pred)


METRICS: Dict[str, Metric] = {
    "rmse": Metric("rmse", rmse, "minimize"),
    "mae": Metric("mae", mae, "minimize"),
    "rsq": Metric("rsq", rsq, "maximize"),
}


def get_metric(name: str) -> Metric:
    """Look up a metric by name."""
    if name not in METRICS:
        raise ValueError(f"Unknown metric '{name}'. Choose from: {list(METRICS)}")
    return METRICS[name]


class RegressionEvaluator:
    """
    Utility class for evaluating regression performance.
    """

    @staticmethod
    def evaluate_regression(y_true, y_pred) -> Dict[str, float]:
        """
        Evaluate a set of predictions with every registered metric.

        Args:
            y_true: Observed outcome
            y_pred: Predicted outcome

        Returns:
            Dictionary with metric names and values
        """
        return {name: metric(y_true, y_pred) for name, metric in METRICS.items()}
