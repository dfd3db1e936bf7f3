"""
Immutable survey dataset with a declared column schema.

Wraps a pandas DataFrame restricted to the schema columns. Numeric and
ordinal (Likert) fields are stored as floats, categorical fields as pandas
categoricals so that every subset keeps the full set of levels.
"""

import hashlib
import json
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..errors import SchemaError
from ..utils.logging import LoggingMixin

NUMERIC_TYPES = ("numeric", "ordinal")


class Dataset(LoggingMixin):
    """
    Ordered, immutable collection of survey records sharing one schema.

    Every schema field is present for every record; absent answers are NaN.
    Row labels of the source table are kept through subsetting so records
    can be traced back to respondents.
    """

    def __init__(self, frame: pd.DataFrame, schema: Mapping[str, str]) -> None:
        """
        Build a dataset from a DataFrame, coercing columns to the schema.

        Args:
            frame: Raw survey table (extra columns are dropped)
            schema: Field name -> 'numeric' | 'ordinal' | 'categorical'

        Raises:
            SchemaError: If a schema field is absent or holds values that
                cannot be coerced to its declared type
        """
        self._schema: Dict[str, str] = dict(schema)
        self._frame = self._coerce(frame, self._schema)

    @classmethod
    def _from_validated(cls, frame: pd.DataFrame, schema: Mapping[str, str]) -> "Dataset":
        dataset = cls.__new__(cls)
        dataset._schema = dict(schema)
        dataset._frame = frame
        return dataset

    @classmethod
    def from_csv(cls, path: Union[str, Path], schema: Mapping[str, str]) -> "Dataset":
        """Read a survey table from CSV once and validate it against the schema."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Survey file not found: {path}")

        frame = pd.read_csv(path)
        dataset = cls(frame, schema)
        dataset.log_info(f"Loaded {dataset.n_rows} records with {len(schema)} fields from {path}")
        return dataset

    @staticmethod
    def _coerce(frame: pd.DataFrame, schema: Mapping[str, str]) -> pd.DataFrame:
        missing_cols = [field for field in schema if field not in frame.columns]
        if missing_cols:
            raise SchemaError(f"Missing schema fields in data: {missing_cols}")

        coerced = {}
        for field, column_type in schema.items():
            raw = frame[field]
            if column_type in NUMERIC_TYPES:
                values = pd.to_numeric(raw, errors="coerce")
                bad = raw[values.isna() & raw.notna()]
                if not bad.empty:
                    raise SchemaError(
                        f"Field '{field}' is declared {column_type} but holds "
                        f"non-numeric values: {sorted(map(str, bad.unique()))[:5]}"
                    )
                coerced[field] = values.astype(float)
            elif column_type == "categorical":
                categories = sorted(raw.dropna().unique(), key=str)
                coerced[field] = pd.Categorical(raw, categories=categories)
            else:
                raise SchemaError(f"Unknown column type {column_type!r} for field '{field}'")

        return pd.DataFrame(coerced, index=frame.index)

    @property
    def n_rows(self) -> int:
        return len(self._frame)

    def __len__(self) -> int:
        return self.n_rows

    @property
    def schema(self) -> Dict[str, str]:
        return dict(self._schema)

    @property
    def fields(self) -> List[str]:
        return list(self._schema)

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the underlying table."""
        return self._frame.copy()

    @property
    def row_labels(self) -> np.ndarray:
        """Source row labels, in dataset order."""
        return self._frame.index.to_numpy(copy=True)

    def column(self, field: str) -> pd.Series:
        self._check_fields([field])
        return self._frame[field].copy()

    def subset(self, positions: Sequence[int]) -> "Dataset":
        """
        New dataset holding the rows at the given positions.

        Positions may repeat (bootstrap analysis sets); row labels repeat
        with them.
        """
        positions = np.asarray(positions, dtype=int)
        return Dataset._from_validated(self._frame.iloc[positions].copy(), self._schema)

    def outcome_vector(self, field: str) -> pd.Series:
        """Outcome column as floats."""
        self._check_fields([field])
        if self._schema[field] not in NUMERIC_TYPES:
            raise SchemaError(f"Outcome field '{field}' must be numeric")
        return self._frame[field].astype(float)

    def design_matrix(self, predictors: Sequence[str]) -> pd.DataFrame:
        """
        Numeric feature matrix for the given predictors.

        Numeric and ordinal fields pass through; categorical fields are
        one-hot encoded over their full level set, so any two subsets of the
        same dataset produce identical columns.
        """
        self._check_fields(predictors)
        pieces = []
        for field in predictors:
            if self._schema[field] == "categorical":
                pieces.append(
                    pd.get_dummies(self._frame[field], prefix=field, prefix_sep="_", dtype=float)
                )
            else:
                pieces.append(self._frame[[field]].astype(float))
        return pd.concat(pieces, axis=1)

    def missing_summary(self) -> pd.Series:
        """Count of missing values per field."""
        return self._frame.isna().sum()

    def drop_missing(self, fields: Optional[Iterable[str]] = None) -> "Dataset":
        """New dataset without records missing any of the given fields (default: all)."""
        fields = list(fields) if fields is not None else self.fields
        self._check_fields(fields)
        mask = self._frame[fields].notna().all(axis=1)
        n_dropped = int((~mask).sum())
        if n_dropped:
            self.log_warning(f"Dropped {n_dropped} record(s) with missing values in {fields}")
        return Dataset._from_validated(self._frame.loc[mask].copy(), self._schema)

    def fingerprint(self) -> str:
        """Content hash of rows, row labels and schema."""
        row_hashes = pd.util.hash_pandas_object(self._frame, index=True).to_numpy()
        digest = hashlib.sha256(row_hashes.tobytes())
        digest.update(json.dumps(self._schema, sort_keys=True).encode("utf-8"))
        return digest.hexdigest()

    def _check_fields(self, fields: Iterable[str]) -> None:
        unknown = [field for field in fields if field not in self._schema]
        if unknown:
            raise SchemaError(f"Unknown fields: {unknown}")

    def __repr__(self) -> str:
        return f"Dataset(n_rows={self.n_rows}, fields={len(self._schema)})"
