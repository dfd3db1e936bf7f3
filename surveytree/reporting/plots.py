"""
Figures for tuning results and the final model.
"""

from pathlib import Path
from typing import Optional, Union

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from ..tuning.results import TuningTable
from ..utils.logging import get_logger

logger = get_logger(__name__)

COLORS = ["#4C72B0", "#D9534F", "#5CB85C", "#F0AD4E", "#9467BD", "#8C564B"]


def plot_tuning_results(
    table: TuningTable,
    save_path: Union[str, Path],
    x: str = "cost_complexity",
    group: Optional[str] = "min_n",
) -> Path:
    """
    Mean metric against one parameter, one line per value of another.

    Error bars show one standard error. Excluded grid points are left out.
    """
    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)

    summary = table.summary
    summary = summary[~summary["excluded"]]
    if x not in summary.columns:
        raise ValueError(f"Unknown parameter '{x}' for x-axis")

    fig, ax = plt.subplots(figsize=(7, 5))

    groups = [(None, summary)] if group is None else list(summary.groupby(group))
    for i, (level, frame) in enumerate(groups):
        frame = frame.sort_values(x)
        ax.errorbar(
            frame[x], frame["mean"],
            yerr=frame["std_err"].fillna(0.0),
            fmt="o-", color=COLORS[i % len(COLORS)], capsize=3, markersize=4,
            label=None if level is None else f"{group} = {level}",
        )

    if x == "cost_complexity":
        ax.set_xscale("log")
    ax.set_xlabel(x)
    ax.set_ylabel(f"mean {table.metric} (± 1 SE)")
    ax.set_title(f"Tuning results: {table.metric}", fontweight="bold")
    if group is not None:
        ax.legend(fontsize=8)
    ax.grid(alpha=0.3)
    plt.tight_layout()
    plt.savefig(save_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Saved tuning plot to {save_path}")
    return save_path


def plot_feature_importance(
    importance: pd.Series,
    save_path: Union[str, Path],
    top_n: int = 15,
) -> Path:
    """Horizontal bar chart of the largest feature importances."""
    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)

    top = importance.sort_values(ascending=False).head(top_n).sort_values()

    fig, ax = plt.subplots(figsize=(7, max(3, len(top) * 0.35)))
    ax.barh(top.index.astype(str), top.values, color=COLORS[0])
    ax.set_xlabel("Importance")
    ax.set_title("Final model feature importance", fontweight="bold")
    ax.grid(axis="x", alpha=0.3)
    plt.tight_layout()
    plt.savefig(save_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Saved feature importance plot to {save_path}")
    return save_path
