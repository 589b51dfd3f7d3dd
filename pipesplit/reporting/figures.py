import os
import tempfile
from pathlib import Path

import pandas as pd

# Matplotlib must be configured before importing pyplot.
_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

import matplotlib  # noqa: E402

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

SUBSET_COLORS = {
    "training": "#4C72B0",
    "potato": "#C9A227",
    "validation": "#55A868",
    "test": "#C44E52",
}


def save_figure(fig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=300, bbox_inches="tight")


def plot_partition(summary: pd.DataFrame, out_path: Path, title: str) -> None:
    """Horizontal stacked bar of subset proportions from a partition summary table."""
    fig, ax = plt.subplots(figsize=(7, 1.8))
    left = 0.0
    for _, row in summary.iterrows():
        width = float(row["proportion"])
        ax.barh([0], [width], left=left, color=SUBSET_COLORS.get(row["subset"], "gray"), edgecolor="white")
        ax.text(left + width / 2, 0, f"{row['subset']}\n{int(row['n'])}", ha="center", va="center", fontsize=8)
        left += width
    ax.set_xlim(0, 1)
    ax.set_yticks([])
    ax.set_xlabel("Share of sample pool")
    ax.set_title(title)
    fig.tight_layout()
    save_figure(fig, out_path)
    plt.close(fig)


def plot_calibration_curve(curves: dict, out_path: Path, title: str, *, xlabel: str, ylabel: str) -> None:
    """Observed-vs-predicted plot; ``curves`` maps a label to an (x, y) DataFrame column pair."""
    fig, ax = plt.subplots(figsize=(6, 5))
    lows, highs = [], []
    for label, (x, y) in curves.items():
        ax.plot(x, y, marker="o", linewidth=2, label=label)
        lows.append(min(min(x), min(y)))
        highs.append(max(max(x), max(y)))
    lo, hi = (min(lows), max(highs)) if lows else (0.0, 1.0)
    ax.plot([lo, hi], [lo, hi], "--", color="gray", linewidth=1, label="Ideal")
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.legend()
    fig.tight_layout()
    save_figure(fig, out_path)
    plt.close(fig)
