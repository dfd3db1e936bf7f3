"""
Exception taxonomy for surveytree.

Every error derives from both SurveyTreeError and ValueError so callers
that only know about ValueError keep working.
"""

from typing import Any, Optional


class SurveyTreeError(ValueError):
    """Base class for all surveytree errors."""


class ConfigError(SurveyTreeError):
    """A configuration file is missing a key or holds an invalid value."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        self.message = message
        super().__init__(f"Invalid configuration '{key}': {message}")

    def __reduce__(self):
        return (self.__class__, (self.key, self.message))


class SchemaError(SurveyTreeError):
    """Input data does not match the declared schema."""


class InvalidProportionError(SurveyTreeError):
    """Split proportion outside the open interval (0, 1)."""

    def __init__(self, prop: Any) -> None:
        self.prop = prop
        super().__init__(f"Split proportion must be in (0, 1), got: {prop!r}")

    def __reduce__(self):
        return (self.__class__, (self.prop,))


class StratificationError(SurveyTreeError):
    """A stratification level cannot be split while keeping it in both subsets."""

    def __init__(self, field: str, level: Any = None, count: Optional[int] = None,
                 message: Optional[str] = None) -> None:
        self.field = field
        self.level = level
        self.count = count
        if message is None:
            message = (
                f"Stratification field '{field}' has level {level!r} with "
                f"{count} record(s); at least 2 are required"
            )
        super().__init__(message)

    def __reduce__(self):
        return (self.__class__, (self.field, self.level, self.count, str(self)))


class DegenerateResampleError(SurveyTreeError):
    """A bootstrap draw selected every training row, leaving no assessment rows."""

    def __init__(self, resample_id: str, n_rows: int) -> None:
        self.resample_id = resample_id
        self.n_rows = n_rows
        super().__init__(
            f"Resample {resample_id} has an empty assessment set "
            f"(all {n_rows} training rows were drawn)"
        )

    def __reduce__(self):
        return (self.__class__, (self.resample_id, self.n_rows))


class GridError(SurveyTreeError):
    """A hyperparameter grid cannot be built as an exact cross product."""


class DegenerateTreeError(SurveyTreeError):
    """A fitted regression tree made no splits."""


class InsufficientDataError(SurveyTreeError):
    """Every resample failed for a grid point."""

    def __init__(self, config_id: str, params: dict, reasons: list) -> None:
        self.config_id = config_id
        self.params = params
        self.reasons = reasons
        distinct = sorted(set(reasons))
        super().__init__(
            f"All resamples failed for {config_id} {params}: "
            f"{'; '.join(distinct) if distinct else 'no results recorded'}"
        )

    def __reduce__(self):
        return (self.__class__, (self.config_id, self.params, self.reasons))


class EmptyTuningTableError(SurveyTreeError):
    """No valid grid point is left to select from."""
