"""
Regression tree implementation for surveytree.

Wraps sklearn.tree.DecisionTreeRegressor (CART with cost-complexity
pruning) with the BaseModel interface.
"""

from typing import Any, Optional, Union
from pathlib import Path
import pandas as pd
import numpy as np
import joblib

from sklearn.tree import DecisionTreeRegressor

from ..errors import DegenerateTreeError
from ..evaluation.metrics import RegressionEvaluator
from .base_model import BaseModel


class RegressionTreeModel(BaseModel):
    """
    CART regression tree tuned on `cost_complexity` and `min_n`.

    `cost_complexity` is expressed relative to the root node's error, the
    way CART's `cp` is: a split must reduce the overall error by at least
    `cost_complexity` times the root error to survive pruning. The absolute
    pruning strength handed to scikit-learn is therefore
    `cost_complexity * var(y)`. `min_n` is the smallest node that may still
    be split.
    """

    def __init__(
        self,
        random_state: int = 42,
        cost_complexity: float = 0.01,
        min_n: int = 2,
        max_depth: Optional[int] = 30,
        reject_degenerate: bool = False,
        **kwargs: Any
    ) -> None:
        """
        Initialize regression tree.

        Args:
            random_state: Seed for scikit-learn's feature permutation when
                splits tie
            cost_complexity: Pruning strength relative to the root error
            min_n: Minimum number of records in a node for it to be split
            max_depth: Maximum tree depth
            reject_degenerate: Raise DegenerateTreeError when the pruned tree
                has no splits
            **kwargs: Additional DecisionTreeRegressor parameters
        """
        if cost_complexity < 0:
            raise ValueError(f"cost_complexity must be >= 0, got: {cost_complexity}")
        if int(min_n) < 2:
            raise ValueError(f"min_n must be >= 2, got: {min_n}")

        super().__init__(
            random_state=random_state,
            cost_complexity=float(cost_complexity),
            min_n=int(min_n),
            max_depth=max_depth,
            **kwargs
        )
        self.reject_degenerate = reject_degenerate
        self.model: Optional[DecisionTreeRegressor] = None

    def _create_model(self, y: pd.Series) -> DecisionTreeRegressor:
        """Create a scikit-learn tree with pruning scaled to the outcome."""
        params = self.model_params.copy()
        cost_complexity = params.pop('cost_complexity')
        min_n = params.pop('min_n')
        root_error = float(np.var(np.asarray(y, dtype=float)))

        return DecisionTreeRegressor(
            criterion='squared_error',
            min_samples_split=min_n,
            ccp_alpha=cost_complexity * root_error,
            random_state=self.random_state,
            **params
        )

    def fit(self, X: pd.DataFrame, y: pd.Series, **kwargs: Any) -> 'RegressionTreeModel':
        """
        Train the tree on the provided data.

        Args:
            X: Training features
            y: Training outcome
            **kwargs: Additional DecisionTreeRegressor.fit parameters

        Returns:
            Self for method chaining

        Raises:
            DegenerateTreeError: If reject_degenerate is set and the tree
                made no splits
        """
        self.log_debug(f"Training regression tree on {len(X)} samples")

        self.feature_names = None
        self.validate_inputs(X, y)

        self.model = self._create_model(y)
        self.model.fit(X, y, **kwargs)
        self.is_fitted = True

        n_leaves = int(self.model.get_n_leaves())
        if self.reject_degenerate and n_leaves < 2:
            self.is_fitted = False
            raise DegenerateTreeError(
                f"Tree with cost_complexity={self.model_params['cost_complexity']:.3g}, "
                f"min_n={self.model_params['min_n']} made no splits"
            )

        self.training_info = {
            'n_samples': len(X),
            'n_features': len(X.columns),
            'n_leaves': n_leaves,
            'depth': int(self.model.get_depth()),
            'ccp_alpha': float(self.model.ccp_alpha),
        }
        self.training_metrics = RegressionEvaluator.evaluate_regression(y, self.predict(X))

        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict the outcome for each row of X.

        Args:
            X: Features for prediction

        Returns:
            Array of predictions
        """
        if not self.is_fitted or self.model is None:
            raise ValueError("Model must be fitted before prediction")

        self.validate_inputs(X)
        return self.model.predict(X)

    def save(self, filepath: Union[str, Path]) -> None:
        """
        Save the trained tree to disk.

        Args:
            filepath: Path to save the model (without extension)
        """
        if not self.is_fitted:
            raise ValueError("Cannot save unfitted model")

        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        model_path = filepath.with_suffix('.pkl')
        joblib.dump(self.model, model_path)
        self._save_metadata(filepath)

        self.log_info(f"Model saved to {model_path}")

    def load(self, filepath: Union[str, Path]) -> 'RegressionTreeModel':
        """
        Load a trained tree from disk.

        Args:
            filepath: Path to load the model from (without extension)

        Returns:
            Self for method chaining
        """
        filepath = Path(filepath)
        model_path = filepath.with_suffix('.pkl')

        if not model_path.exists():
            raise FileNotFoundError(f"Model file not found: {model_path}")

        self.model = joblib.load(model_path)
        self._load_metadata(filepath)

        self.log_info(f"Model loaded from {model_path}")
        return self

    def get_feature_importance(self) -> Optional[pd.Series]:
        """
        Impurity-based feature importance of the fitted tree.

        Returns:
            Series indexed by feature name, sorted descending
        """
        if not self.is_fitted or self.model is None:
            self.log_warning("Model not fitted, cannot get feature importance")
            return None

        return pd.Series(
            data=self.model.feature_importances_,
            index=self.feature_names,
            name='importance'
        ).sort_values(ascending=False, kind='mergesort')
