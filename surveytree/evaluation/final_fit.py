"""
Final fit of the selected grid point on the full training subset.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Type

import pandas as pd

from ..data.dataset import Dataset
from ..models.base_model import BaseModel
from ..models.tree_model import RegressionTreeModel
from ..tuning.grid import GridPoint
from ..utils.logging import get_logger
from .metrics import RegressionEvaluator

logger = get_logger(__name__)


@dataclass
class FinalFit:
    """Deployable model plus its training diagnostics."""

    model: BaseModel
    grid_point: GridPoint
    outcome: str
    predictors: Sequence[str]
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def feature_importance(self) -> Optional[pd.Series]:
        return self.diagnostics.get("feature_importance")

    def predict(self, data: Dataset):
        return self.model.predict(data.design_matrix(self.predictors))

    def evaluate(self, data: Dataset) -> Dict[str, float]:
        """Metrics of the final model on another subset (typically the test set)."""
        y = data.outcome_vector(self.outcome)
        metrics = RegressionEvaluator.evaluate_regression(y, self.predict(data))
        logger.info(
            f"Final model on {data.n_rows} held-out records: "
            f"rmse={metrics['rmse']:.4f}, rsq={metrics['rsq']:.4f}"
        )
        return metrics


def fit_final(
    train: Dataset,
    grid_point: GridPoint,
    outcome: str,
    predictors: Sequence[str],
    model_class: Type[BaseModel] = RegressionTreeModel,
    model_kwargs: Optional[Dict[str, Any]] = None,
) -> FinalFit:
    """
    Refit the selected grid point on the whole training subset.

    Args:
        train: Training subset (no resampling)
        grid_point: Selected hyperparameters
        outcome: Outcome field
        predictors: Predictor fields
        model_class: BaseModel subclass accepting the grid's parameters
        model_kwargs: Fixed keyword arguments (random_state etc.)

    Returns:
        FinalFit with in-sample rmse/rsq/mae, feature importances,
        leaf count and depth
    """
    X = train.design_matrix(predictors)
    y = train.outcome_vector(outcome)

    model = model_class(**(model_kwargs or {}), **grid_point.as_dict())
    model.fit(X, y)

    diagnostics: Dict[str, Any] = dict(model.training_metrics)
    diagnostics["feature_importance"] = model.get_feature_importance()
    diagnostics["n_leaves"] = model.training_info.get("n_leaves")
    diagnostics["depth"] = model.training_info.get("depth")
    diagnostics["n_train"] = train.n_rows

    logger.info(
        f"Final fit {grid_point.config_id} {grid_point.as_dict()} on {train.n_rows} records: "
        f"rmse={diagnostics['rmse']:.4f}, leaves={diagnostics['n_leaves']}"
    )

    return FinalFit(
        model=model,
        grid_point=grid_point,
        outcome=outcome,
        predictors=list(predictors),
        diagnostics=diagnostics,
    )
