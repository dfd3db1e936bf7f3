"""
CLI interface for surveytree tuning runs.

Provides the pipeline orchestrator (load -> split -> resample -> grid ->
tune -> select -> final fit) and the commands that drive it.
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import typer
from joblib import Parallel

from ..data.dataset import Dataset
from ..data.resampling import ResampleCollection, bootstraps
from ..data.splitter import Split, initial_split
from ..errors import EmptyTuningTableError, SchemaError
from ..evaluation.final_fit import FinalFit, fit_final
from ..evaluation.metrics import get_metric
from ..models.tree_model import RegressionTreeModel
from ..reporting.plots import plot_feature_importance, plot_tuning_results
from ..tuning.cache import TuningCache, tuning_cache_key
from ..tuning.grid import (
    KNOWN_PARAMETERS, Grid, GridPoint, parameters_from_config, regular_grid
)
from ..tuning.grid_tuner import GridTuner
from ..tuning.results import TuningTable
from ..tuning.selection import rank_summary, select_best
from ..utils.config import PipelineConfig, load_config
from ..utils.logging import LoggingMixin


@dataclass
class PipelineResult:
    """Everything one tuning run produced."""

    split: Split
    grid: Grid
    table: TuningTable
    best: List[GridPoint]
    final: FinalFit
    test_metrics: Dict[str, float]
    resamples: Optional[ResampleCollection]
    cache_hit: bool


class TuningPipeline(LoggingMixin):
    """Main tuning pipeline orchestrator."""

    def __init__(self, config: PipelineConfig, cache: Optional[TuningCache] = None) -> None:
        self.config = config
        self.cache = cache
        self.log_info(f"Initialized tuning pipeline with seed={config.seed}")

    @property
    def _fields(self) -> List[str]:
        data = self.config.data
        fields = [data.outcome, *data.predictors, self.config.split.strata]
        return list(dict.fromkeys(fields))

    def load_data(self) -> Dataset:
        """Read the survey file once and apply the configured missing-value policy."""
        dataset = Dataset.from_csv(self.config.data.path, self.config.data.schema)
        return self.apply_missing_policy(dataset)

    def apply_missing_policy(self, dataset: Dataset) -> Dataset:
        missing = dataset.missing_summary()[self._fields]
        missing = missing[missing > 0]
        if missing.empty:
            return dataset

        if self.config.data.missing == "error":
            raise SchemaError(
                "Missing values in modelling fields (set data.missing: drop to remove "
                f"those records): {missing.to_dict()}"
            )

        return dataset.drop_missing(self._fields)

    def _cache_key(self, dataset: Dataset, grid: Grid, model_kwargs: Dict[str, Any]) -> str:
        cfg = self.config
        return tuning_cache_key(
            dataset_fingerprint=dataset.fingerprint(),
            split_config={
                "prop": cfg.split.prop,
                "strata": cfg.split.strata,
                "strata_bins": cfg.split.strata_bins,
            },
            grid_definition=grid.definition(),
            times=cfg.resampling.times,
            seed=cfg.seed,
            metric=cfg.tuning.metric,
            outcome=cfg.data.outcome,
            predictors=cfg.data.predictors,
            model_kwargs=model_kwargs,
        )

    def run(self, dataset: Optional[Dataset] = None, show_progress: bool = False) -> PipelineResult:
        """
        Run the full tuning pipeline.

        Args:
            dataset: Already-loaded dataset (read from config when omitted)
            show_progress: Show a progress bar while tuning

        Returns:
            PipelineResult with split, tuning table, selection and final fit
        """
        cfg = self.config
        get_metric(cfg.tuning.metric)

        if dataset is None:
            dataset = self.load_data()
        else:
            dataset = self.apply_missing_policy(dataset)

        split = initial_split(
            dataset,
            prop=cfg.split.prop,
            strata=cfg.split.strata,
            seed=cfg.seed,
            strata_bins=cfg.split.strata_bins,
        )
        grid = regular_grid(parameters_from_config(cfg.grid.parameters), cfg.grid.levels)

        model_kwargs = {
            "random_state": cfg.seed,
            "reject_degenerate": cfg.tuning.reject_degenerate_trees,
        }

        key = self._cache_key(dataset, grid, model_kwargs)
        table = self.cache.get(key) if self.cache is not None else None
        cache_hit = table is not None
        resamples = None

        if cache_hit:
            self.log_info(f"Reusing cached tuning table {key[:12]}")
            for message in table.exclusion_messages():
                self.log_warning(message)

        with Parallel(n_jobs=cfg.tuning.n_jobs) as parallel:
            if table is None:
                resamples = bootstraps(
                    split.train,
                    times=cfg.resampling.times,
                    strata=cfg.split.strata,
                    seed=cfg.seed,
                    strata_bins=cfg.split.strata_bins,
                )
                tuner = GridTuner(
                    outcome=cfg.data.outcome,
                    predictors=cfg.data.predictors,
                    metric=cfg.tuning.metric,
                    model_class=RegressionTreeModel,
                    model_kwargs=model_kwargs,
                    random_state=cfg.seed,
                    parallel=parallel,
                    show_progress=show_progress,
                )
                table = tuner.tune(split.train, resamples, grid)
                if self.cache is not None:
                    self.cache.put(key, table)

        best = select_best(table, k=1, one_std_err=cfg.tuning.one_std_err)

        final = fit_final(
            split.train,
            best[0],
            outcome=cfg.data.outcome,
            predictors=cfg.data.predictors,
            model_class=RegressionTreeModel,
            model_kwargs={"random_state": cfg.seed},
        )
        test_metrics = final.evaluate(split.test)

        return PipelineResult(
            split=split,
            grid=grid,
            table=table,
            best=best,
            final=final,
            test_metrics=test_metrics,
            resamples=resamples,
            cache_hit=cache_hit,
        )

    def save_outputs(self, result: PipelineResult, output_dir: Optional[Path] = None) -> Dict[str, Path]:
        """Write tables, parameters, the final model and figures."""
        output_path = Path(output_dir) if output_dir is not None else self.config.output.dir
        output_path.mkdir(parents=True, exist_ok=True)

        paths = {
            "results": output_path / "tuning_results.csv",
            "summary": output_path / "tuning_summary.csv",
            "best_params": output_path / "best_params.json",
            "final_metrics": output_path / "final_metrics.json",
            "feature_importance": output_path / "feature_importance.csv",
            "model": output_path / "final_model.pkl",
        }

        result.table.results.to_csv(paths["results"], index=False)
        result.table.summary.to_csv(paths["summary"])

        best = result.best[0]
        with open(paths["best_params"], "w") as f:
            json.dump({"config_id": best.config_id, **best.as_dict()}, f, indent=2)

        diagnostics = {
            k: v for k, v in result.final.diagnostics.items() if k != "feature_importance"
        }
        final_metrics = {
            "train": diagnostics,
            "test": result.test_metrics,
            "n_test": result.split.n_test,
            "excluded_grid_points": {
                result.grid[index].config_id: str(error)
                for index, error in result.table.failures.items()
            },
            "cache_hit": result.cache_hit,
        }
        with open(paths["final_metrics"], "w") as f:
            json.dump(final_metrics, f, indent=2, default=float)

        importance = result.final.feature_importance
        if importance is not None:
            importance.to_csv(paths["feature_importance"], header=True)
            paths["importance_plot"] = plot_feature_importance(
                importance, output_path / "feature_importance.png"
            )

        result.final.model.save(output_path / "final_model")
        paths["tuning_plot"] = plot_tuning_results(result.table, output_path / "tuning_results.png")

        self.log_info(f"Saved outputs to {output_path}")
        return paths


def tune(
    config_path: str = typer.Argument(..., help="Path to tuning YAML config"),
    n_jobs: Optional[int] = typer.Option(None, help="Override tuning.n_jobs"),
    output_dir: Optional[str] = typer.Option(None, help="Override output.dir"),
    use_cache: bool = typer.Option(True, "--cache/--no-cache", help="Use output.cache_dir if set"),
    progress: bool = typer.Option(False, "--progress", help="Show a progress bar"),
):
    """Tune the regression tree and refit the selected model."""

    try:
        config = load_config(config_path)
        if n_jobs is not None:
            config = replace(config, tuning=replace(config.tuning, n_jobs=n_jobs))

        cache = None
        if use_cache and config.output.cache_dir is not None:
            cache = TuningCache(config.output.cache_dir)

        pipeline = TuningPipeline(config, cache=cache)
        result = pipeline.run(show_progress=progress)
        pipeline.save_outputs(result, Path(output_dir) if output_dir else None)

        best = result.best[0]
        typer.echo(f"✅ Tuning completed{' (cached)' if result.cache_hit else ''}")
        typer.echo(f"Best: {best.config_id} {best.as_dict()}")
        typer.echo(f"Test RMSE: {result.test_metrics['rmse']:.4f}")
        if result.table.failures:
            typer.echo(f"Excluded grid points: {len(result.table.failures)}")
        typer.echo(f"Results saved to: {output_dir or config.output.dir}")

    except Exception as e:
        typer.echo(f"❌ Tuning failed: {e}", err=True)
        raise typer.Exit(1)


def show_best_command(
    summary_file: str = typer.Argument(..., help="Path to tuning_summary.csv"),
    n: int = typer.Option(5, help="Number of rows to show"),
    one_std_err: bool = typer.Option(False, "--one-std-err", help="Apply the one-standard-error rule"),
):
    """Show the best grid points of a saved tuning summary, in selection order."""

    try:
        summary = pd.read_csv(summary_file, index_col="grid_index")
        simpler = {
            c: KNOWN_PARAMETERS[c].simpler for c in summary.columns if c in KNOWN_PARAMETERS
        }
        metric = str(summary["metric"].iloc[0])

        try:
            ranked = rank_summary(summary, metric, simpler, one_std_err=one_std_err)
        except EmptyTuningTableError:
            typer.echo("No valid grid points in summary")
            raise typer.Exit(1)

        columns = [c for c in ranked.columns if c not in ("metric", "excluded", "reason")]
        typer.echo(ranked[columns].head(n).to_string())

    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"❌ Could not read summary: {e}", err=True)
        raise typer.Exit(1)


__all__ = ["PipelineResult", "TuningPipeline", "tune", "show_best_command"]
