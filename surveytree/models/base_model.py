"""
Abstract base model for surveytree.

Defines the interface the tuning orchestration relies on, so the grid
search can be exercised independently of the concrete tree algorithm.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union
from pathlib import Path
import pandas as pd
import numpy as np
import json
from datetime import datetime

from ..utils.logging import LoggingMixin


class BaseModel(ABC, LoggingMixin):
    """
    Abstract base class for all surveytree regression models.

    Provides consistent interface for model training, prediction,
    and persistence operations across different algorithms.
    """

    def __init__(self, random_state: int = 42, **kwargs: Any) -> None:
        """
        Initialize base model.

        Args:
            random_state: Random seed for reproducibility
            **kwargs: Model hyperparameters
        """
        self.random_state = random_state
        self.model_params = kwargs
        self.is_fitted = False
        self.feature_names: Optional[list] = None
        self.training_info: Dict[str, Any] = {}
        self.training_metrics: Dict[str, float] = {}

        self.log_debug(f"Initialized {self.__class__.__name__} with {kwargs}")

    @abstractmethod
    def fit(self, X: pd.DataFrame, y: pd.Series, **kwargs: Any) -> 'BaseModel':
        """
        Train the model on the provided data.

        Args:
            X: Training features
            y: Training outcome
            **kwargs: Additional training parameters

        Returns:
            Self for method chaining
        """
        pass

    @abstractmethod
    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict the outcome for each row of X.

        Args:
            X: Features for prediction

        Returns:
            Array of shape (n_samples,)
        """
        pass

    @abstractmethod
    def save(self, filepath: Union[str, Path]) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        pass

    @abstractmethod
    def load(self, filepath: Union[str, Path]) -> 'BaseModel':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to load the model from

        Returns:
            Self for method chaining
        """
        pass

    def get_feature_importance(self) -> Optional[pd.Series]:
        """
        Get feature importance scores (if supported by the model).

        Returns:
            Series with feature names as index and importance scores as values,
            or None if not supported
        """
        return None

    def validate_inputs(self, X: pd.DataFrame, y: Optional[pd.Series] = None) -> None:
        """
        Validate input data format and consistency.

        Args:
            X: Feature matrix
            y: Optional outcome vector

        Raises:
            ValueError: If inputs are invalid
        """
        if not isinstance(X, pd.DataFrame):
            raise ValueError("X must be a pandas DataFrame")

        if X.empty:
            raise ValueError("X cannot be empty")

        if y is not None:
            if not isinstance(y, pd.Series):
                raise ValueError("y must be a pandas Series")

            if len(X) != len(y):
                raise ValueError(f"X and y must have same length: {len(X)} vs {len(y)}")

            if not pd.api.types.is_numeric_dtype(y):
                raise ValueError(f"y must be numeric, got dtype: {y.dtype}")

            if y.isnull().any():
                raise ValueError(f"y has {int(y.isnull().sum())} missing values")

        if X.isnull().any().any():
            n_missing = X.isnull().sum().sum()
            self.log_warning(f"Found {n_missing} missing values in features")

        if self.feature_names is None:
            self.feature_names = list(X.columns)
        elif list(X.columns) != self.feature_names:
            raise ValueError(
                f"Feature names mismatch. Expected: {self.feature_names}, "
                f"got: {list(X.columns)}"
            )

    def _save_metadata(self, filepath: Path) -> None:
        """
        Save model metadata to accompany the main model file.

        Args:
            filepath: Base filepath for saving metadata
        """
        metadata = {
            'model_class': self.__class__.__name__,
            'random_state': self.random_state,
            'model_params': self.model_params,
            'feature_names': self.feature_names,
            'training_info': self.training_info,
            'training_metrics': self.training_metrics,
            'is_fitted': self.is_fitted,
            'saved_at': datetime.now().isoformat()
        }

        metadata_path = filepath.with_suffix('.metadata.json')
        with open(metadata_path, 'w') as f:
            json.dump(metadata, f, indent=2, default=float)

        self.log_info(f"Saved metadata to {metadata_path}")

    def _load_metadata(self, filepath: Path) -> Dict[str, Any]:
        """
        Load model metadata from disk.

        Args:
            filepath: Base filepath for loading metadata

        Returns:
            Dictionary with model metadata
        """
        metadata_path = filepath.with_suffix('.metadata.json')

        if not metadata_path.exists():
            self.log_warning(f"Metadata file not found: {metadata_path}")
            return {}

        with open(metadata_path, 'r') as f:
            metadata = json.load(f)

        self.random_state = metadata.get('random_state', 42)
        self.model_params = metadata.get('model_params', {})
        self.feature_names = metadata.get('feature_names')
        self.training_info = metadata.get('training_info', {})
        self.training_metrics = metadata.get('training_metrics', {})
        self.is_fitted = metadata.get('is_fitted', False)

        self.log_info(f"Loaded metadata from {metadata_path}")
        return metadata

    def __str__(self) -> str:
        """String representation of the model."""
        return (
            f"{self.__class__.__name__}("
            f"fitted={self.is_fitted}, "
            f"features={len(self.feature_names) if self.feature_names else 0}, "
            f"params={self.model_params})"
        )

    def __repr__(self) -> str:
        """Detailed representation of the model."""
        return self.__str__()
