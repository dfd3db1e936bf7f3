"""
Configuration loader for surveytree tuning runs.

Every setting is explicit: a missing key is a ConfigError rather than a
silent default. Usage:

    from surveytree.utils.config import load_config
    cfg = load_config("config/tuning.yaml")
    print(cfg.split.prop, cfg.resampling.times)
"""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from ..errors import ConfigError


COLUMN_TYPES = ("numeric", "ordinal", "categorical")
MISSING_POLICIES = ("drop", "error")
TRANSFORMS = ("log10", "identity")


@dataclass(frozen=True)
class DataConfig:
    path: Path
    outcome: str
    predictors: Tuple[str, ...]
    schema: Dict[str, str]
    missing: str


@dataclass(frozen=True)
class SplitConfig:
    prop: float
    strata: str
    strata_bins: int


@dataclass(frozen=True)
class ResamplingConfig:
    times: int


@dataclass(frozen=True)
class GridConfig:
    levels: Union[int, Dict[str, int]]
    parameters: Dict[str, Dict[str, Any]]


@dataclass(frozen=True)
class TuningConfig:
    metric: str
    one_std_err: bool
    n_jobs: int
    reject_degenerate_trees: bool


@dataclass(frozen=True)
class OutputConfig:
    dir: Path
    cache_dir: Optional[Path]


@dataclass(frozen=True)
class PipelineConfig:
    data: DataConfig
    split: SplitConfig
    resampling: ResamplingConfig
    grid: GridConfig
    tuning: TuningConfig
    seed: int
    output: OutputConfig

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view with paths rendered as strings."""
        raw = asdict(self)
        raw["data"]["path"] = str(self.data.path)
        raw["data"]["predictors"] = list(self.data.predictors)
        raw["output"]["dir"] = str(self.output.dir)
        raw["output"]["cache_dir"] = (
            str(self.output.cache_dir) if self.output.cache_dir is not None else None
        )
        return raw


def _require(section: Mapping[str, Any], key: str, dotted: str) -> Any:
    if not isinstance(section, Mapping):
        raise ConfigError(dotted.rsplit(".", 1)[0], "expected a mapping")
    if key not in section:
        raise ConfigError(dotted, "missing required key")
    return section[key]


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = _require(raw, key, key)
    if not isinstance(value, Mapping):
        raise ConfigError(key, "expected a mapping")
    return value


def _resolve(base_dir: Path, value: Union[str, Path]) -> Path:
    path = Path(value)
    return path if path.is_absolute() else (base_dir / path).resolve()


def _parse_data(raw: Mapping[str, Any], base_dir: Path) -> DataConfig:
    path = _require(raw, "path", "data.path")
    outcome = _require(raw, "outcome", "data.outcome")
    predictors = _require(raw, "predictors", "data.predictors")
    schema = _require(raw, "schema", "data.schema")
    missing = _require(raw, "missing", "data.missing")

    if not isinstance(predictors, list) or not predictors:
        raise ConfigError("data.predictors", "expected a non-empty list of field names")
    if not isinstance(schema, Mapping) or not schema:
        raise ConfigError("data.schema", "expected a mapping of field name to column type")

    for field, column_type in schema.items():
        if column_type not in COLUMN_TYPES:
            raise ConfigError(
                f"data.schema.{field}",
                f"unknown column type {column_type!r}; choose from {list(COLUMN_TYPES)}"
            )

    for field in [outcome] + list(predictors):
        if field not in schema:
            raise ConfigError("data.schema", f"field '{field}' is not declared")

    if schema[outcome] != "numeric":
        raise ConfigError("data.outcome", f"outcome '{outcome}' must be a numeric field")

    if missing not in MISSING_POLICIES:
        raise ConfigError(
            "data.missing", f"unknown policy {missing!r}; choose from {list(MISSING_POLICIES)}"
        )

    return DataConfig(
        path=_resolve(base_dir, path),
        outcome=outcome,
        predictors=tuple(predictors),
        schema=dict(schema),
        missing=missing,
    )


def _parse_split(raw: Mapping[str, Any], schema: Mapping[str, str]) -> SplitConfig:
    prop = _require(raw, "prop", "split.prop")
    strata = _require(raw, "strata", "split.strata")
    strata_bins = _require(raw, "strata_bins", "split.strata_bins")

    if not isinstance(prop, (int, float)) or isinstance(prop, bool):
        raise ConfigError("split.prop", f"expected a number, got {prop!r}")
    if strata not in schema:
        raise ConfigError("split.strata", f"field '{strata}' is not declared in data.schema")
    if not isinstance(strata_bins, int) or strata_bins < 2:
        raise ConfigError("split.strata_bins", f"expected an integer >= 2, got {strata_bins!r}")

    return SplitConfig(prop=float(prop), strata=strata, strata_bins=strata_bins)


def _parse_grid(raw: Mapping[str, Any]) -> GridConfig:
    levels = _require(raw, "levels", "grid.levels")
    parameters = _require(raw, "parameters", "grid.parameters")

    if not isinstance(parameters, Mapping) or not parameters:
        raise ConfigError("grid.parameters", "expected a non-empty mapping")

    parsed = {}
    for name, options in parameters.items():
        value_range = _require(options, "range", f"grid.parameters.{name}.range")
        transform = _require(options, "transform", f"grid.parameters.{name}.transform")
        if not isinstance(value_range, list) or len(value_range) != 2:
            raise ConfigError(f"grid.parameters.{name}.range", "expected [low, high]")
        if transform not in TRANSFORMS:
            raise ConfigError(
                f"grid.parameters.{name}.transform",
                f"unknown transform {transform!r}; choose from {list(TRANSFORMS)}"
            )
        parsed[name] = {"range": [float(v) for v in value_range], "transform": transform}

    if isinstance(levels, Mapping):
        missing = [name for name in parsed if name not in levels]
        if missing:
            raise ConfigError("grid.levels", f"no level count for parameters: {missing}")
        levels = {name: int(levels[name]) for name in parsed}
    elif not isinstance(levels, int) or isinstance(levels, bool):
        raise ConfigError("grid.levels", f"expected an integer or mapping, got {levels!r}")

    return GridConfig(levels=levels, parameters=parsed)


def _parse_tuning(raw: Mapping[str, Any]) -> TuningConfig:
    metric = _require(raw, "metric", "tuning.metric")
    one_std_err = _require(raw, "one_std_err", "tuning.one_std_err")
    n_jobs = _require(raw, "n_jobs", "tuning.n_jobs")
    reject = _require(raw, "reject_degenerate_trees", "tuning.reject_degenerate_trees")

    if not isinstance(one_std_err, bool):
        raise ConfigError("tuning.one_std_err", "expected true or false")
    if not isinstance(reject, bool):
        raise ConfigError("tuning.reject_degenerate_trees", "expected true or false")
    if not isinstance(n_jobs, int) or n_jobs == 0:
        raise ConfigError("tuning.n_jobs", f"expected a non-zero integer, got {n_jobs!r}")

    return TuningConfig(
        metric=str(metric),
        one_std_err=one_std_err,
        n_jobs=n_jobs,
        reject_degenerate_trees=reject,
    )


def parse_config(raw: Mapping[str, Any], base_dir: Union[str, Path] = ".") -> PipelineConfig:
    """
    Validate a raw configuration mapping.

    Args:
        raw: Mapping as produced by yaml.safe_load
        base_dir: Directory relative paths are resolved against

    Returns:
        Frozen PipelineConfig

    Raises:
        ConfigError: If a key is missing or a value is invalid
    """
    if not isinstance(raw, Mapping):
        raise ConfigError("<root>", "expected a mapping at the top level")

    base_dir = Path(base_dir)
    data = _parse_data(_section(raw, "data"), base_dir)
    split = _parse_split(_section(raw, "split"), data.schema)

    resampling_raw = _section(raw, "resampling")
    times = _require(resampling_raw, "times", "resampling.times")
    if not isinstance(times, int) or times < 1:
        raise ConfigError("resampling.times", f"expected a positive integer, got {times!r}")

    grid = _parse_grid(_section(raw, "grid"))
    tuning = _parse_tuning(_section(raw, "tuning"))

    seed = _require(raw, "seed", "seed")
    if not isinstance(seed, int):
        raise ConfigError("seed", f"expected an integer, got {seed!r}")

    output_raw = _section(raw, "output")
    out_dir = _require(output_raw, "dir", "output.dir")
    cache_dir = _require(output_raw, "cache_dir", "output.cache_dir")

    return PipelineConfig(
        data=data,
        split=split,
        resampling=ResamplingConfig(times=times),
        grid=grid,
        tuning=tuning,
        seed=seed,
        output=OutputConfig(
            dir=_resolve(base_dir, out_dir),
            cache_dir=_resolve(base_dir, cache_dir) if cache_dir is not None else None,
        ),
    )


def load_config(path: Union[str, Path]) -> PipelineConfig:
    """Load a YAML config file and validate it."""
    path = Path(path)
    if not path.exists():
        raise ConfigError("<file>", f"config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    return parse_config(raw or {}, base_dir=path.resolve().parent)
