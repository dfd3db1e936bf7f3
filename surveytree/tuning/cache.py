"""
On-disk cache of tuning tables keyed by run configuration.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import joblib

from ..utils.logging import LoggingMixin
from .results import TuningTable


def tuning_cache_key(
    dataset_fingerprint: str,
    split_config: Dict[str, Any],
    grid_definition: Dict[str, Any],
    times: int,
    seed: int,
    metric: str,
    outcome: str,
    predictors: Sequence[str],
    model_kwargs: Optional[Dict[str, Any]] = None,
) -> str:
    """Stable sha256 key for one tuning configuration."""
    payload = {
        "dataset": dataset_fingerprint,
        "split": split_config,
        "grid": grid_definition,
        "times": times,
        "seed": seed,
        "metric": metric,
        "outcome": outcome,
        "predictors": list(predictors),
        "model": model_kwargs or {},
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class TuningCache(LoggingMixin):
    """
    Key-value store of TuningTables on disk.

    The pipeline queries it before tuning and populates it afterwards;
    nothing is cached implicitly.
    """

    def __init__(self, cache_dir: Union[str, Path]) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"tuning_{key}.pkl"

    def __contains__(self, key: str) -> bool:
        return self._path(key).exists()

    def get(self, key: str) -> Optional[TuningTable]:
        """Stored table for `key`, or None on a miss."""
        path = self._path(key)
        if not path.exists():
            self.log_debug(f"Cache miss for {key[:12]}")
            return None

        table = joblib.load(path)
        self.log_info(f"Cache hit for {key[:12]}: {table}")
        return table

    def put(self, key: str, table: TuningTable) -> Path:
        """Store a table under `key`."""
        path = self._path(key)
        joblib.dump(table, path)
        self.log_info(f"Cached tuning table to {path}")
        return path

    def clear(self) -> int:
        """Remove every cached table; returns how many were removed."""
        removed = 0
        for path in self.cache_dir.glob("tuning_*.pkl"):
            path.unlink()
            removed += 1
        return removed
