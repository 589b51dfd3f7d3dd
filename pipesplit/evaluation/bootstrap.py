from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from pipesplit.evaluation.metrics import (
    BINARY_METRICS,
    REGRESSION_METRICS,
    compute_binary_metrics,
    compute_regression_metrics,
)


def _stratified_bootstrap_indices(y_true: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    y = np.asarray(y_true, dtype=int)
    idx_pos = np.where(y == 1)[0]
    idx_neg = np.where(y == 0)[0]

    if idx_pos.size == 0 or idx_neg.size == 0:
        return rng.integers(0, y.size, size=y.size, endpoint=False)

    s_pos = idx_pos[rng.integers(0, idx_pos.size, size=idx_pos.size, endpoint=False)]
    s_neg = idx_neg[rng.integers(0, idx_neg.size, size=idx_neg.size, endpoint=False)]
    s = np.concatenate([s_pos, s_neg])
    rng.shuffle(s)
    return s


def bootstrap_metric_draws(
    *,
    y_true: np.ndarray,
    y_pred: np.ndarray,
    n_boot: int,
    seed: int,
    task: str = "classification",
) -> pd.DataFrame:
    """Metric values over bootstrap resamples of a held-out set.

    Classification resamples within each class so every draw keeps the
    observed event count.
    """
    metrics = BINARY_METRICS if task == "classification" else REGRESSION_METRICS
    if n_boot <= 0:
        return pd.DataFrame(columns=["iter", *metrics])
    y = np.asarray(y_true, dtype=int if task == "classification" else float)
    p = np.asarray(y_pred, dtype=float)
    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n_boot):
        if task == "classification":
            idx = _stratified_bootstrap_indices(y, rng)
            m = compute_binary_metrics(y[idx], p[idx])
        else:
            idx = rng.integers(0, y.size, size=y.size, endpoint=False)
            m = compute_regression_metrics(y[idx], p[idx])
        rows.append({"iter": i, **m})
    return pd.DataFrame(rows)


def summarize_bootstrap_ci(
    draws: pd.DataFrame,
    *,
    alpha: float = 0.05,
    metrics: Optional[Iterable[str]] = None,
) -> Dict[str, Tuple[float, float]]:
    if metrics is None:
        metrics = [c for c in draws.columns if c != "iter"]
    if draws.empty:
        return {m: (np.nan, np.nan) for m in metrics}
    lo = float(100.0 * (alpha / 2.0))
    hi = float(100.0 * (1.0 - alpha / 2.0))
    out: Dict[str, Tuple[float, float]] = {}
    for m in metrics:
        vals = draws[m].dropna().to_numpy(dtype=float)
        if vals.size == 0:
            out[m] = (np.nan, np.nan)
        else:
            out[m] = (float(np.percentile(vals, lo)), float(np.percentile(vals, hi)))
    return out
