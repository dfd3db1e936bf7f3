"""
Main CLI entry point for surveytree.

Combines all command modules into a single CLI interface.
"""

import typer
from typing import Optional
from pathlib import Path

from ..utils.logging import setup_logging

app = typer.Typer(
    name="surveytree",
    help="Grocery survey regression-tree tuning",
    add_completion=False
)

from .tune import tune, show_best_command

app.command("tune")(tune)
app.command("show-best")(show_best_command)


@app.command("make-example-data")
def make_example_data(
    output_file: str = typer.Argument("data/grocery_survey.csv", help="CSV file to write"),
    n_samples: int = typer.Option(120, help="Number of respondents"),
    random_state: int = typer.Option(42, help="Random seed")
):
    """Write a synthetic grocery survey matching config/tuning.yaml."""
    from ..data.example import write_example_data

    path = write_example_data(output_file, n_samples=n_samples, random_state=random_state)
    typer.echo(f"✅ Wrote {n_samples} synthetic respondents to {path}")


@app.command()
def version():
    """Show version information."""
    from .. import __version__
    typer.echo(f"surveytree v{__version__}")


@app.command()
def info(
    config_path: Optional[str] = typer.Argument(None, help="Optional config file to check")
):
    """Show pipeline stages and, if given, a summary of a config file."""
    typer.echo("Grocery Survey Regression-Tree Tuning")
    typer.echo("=" * 40)
    typer.echo("Stages:")
    typer.echo("  - Load survey table (declared schema)")
    typer.echo("  - Stratified train/test split")
    typer.echo("  - Stratified bootstrap resamples")
    typer.echo("  - Regular grid over cost_complexity x min_n")
    typer.echo("  - Parallel grid search (joblib)")
    typer.echo("  - Best grid point (optional one-standard-error rule)")
    typer.echo("  - Final fit on the training set, scored on the test set")

    if config_path is None:
        return

    from ..utils.config import load_config

    path = Path(config_path)
    try:
        config = load_config(path)
    except Exception as e:
        typer.echo(f"✗ {path}: {e}", err=True)
        raise typer.Exit(1)

    typer.echo()
    typer.echo(f"✓ Config: {path}")
    typer.echo(f"  Data: {config.data.path} ({'found' if config.data.path.exists() else 'missing'})")
    typer.echo(f"  Outcome: {config.data.outcome}; predictors: {len(config.data.predictors)}")
    typer.echo(f"  Split: prop={config.split.prop}, strata={config.split.strata}")
    typer.echo(f"  Bootstraps: {config.resampling.times}; grid levels: {config.grid.levels}")
    typer.echo(f"  Metric: {config.tuning.metric}; one-SE rule: {config.tuning.one_std_err}")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Log to file")
):
    """
    Grocery survey regression-tree tuning.

    Splits the survey, grid-searches a regression tree over stratified
    bootstrap resamples and refits the selected model.
    """
    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = "WARNING"

    setup_logging(log_level=log_level, log_file=log_file)


if __name__ == "__main__":
    app()
