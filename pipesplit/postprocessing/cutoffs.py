from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from pipesplit.config import FIXED_CUTOFF

logger = logging.getLogger(__name__)

CUTOFF_CHOICES = ("none", "fixed", "j_index", "f1")


def _rates(y_true: np.ndarray, y_pred: np.ndarray):
    tp = float(np.sum((y_true == 1) & (y_pred == 1)))
    tn = float(np.sum((y_true == 0) & (y_pred == 0)))
    fp = float(np.sum((y_true == 0) & (y_pred == 1)))
    fn = float(np.sum((y_true == 1) & (y_pred == 0)))
    return tp, tn, fp, fn


def j_index_at(y_true, y_prob, threshold: float) -> float:
    y_true = np.asarray(y_true, dtype=int)
    tp, tn, fp, fn = _rates(y_true, (np.asarray(y_prob, dtype=float) >= threshold).astype(int))
    sens = tp / (tp + fn) if (tp + fn) > 0 else 0.0
    spec = tn / (tn + fp) if (tn + fp) > 0 else 0.0
    return sens + spec - 1.0


def f1_at(y_true, y_prob, threshold: float) -> float:
    y_true = np.asarray(y_true, dtype=int)
    tp, _tn, fp, fn = _rates(y_true, (np.asarray(y_prob, dtype=float) >= threshold).astype(int))
    denom = 2 * tp + fp + fn
    return 2 * tp / denom if denom > 0 else 0.0


_CUTOFF_METRICS = {"j_index": j_index_at, "f1": f1_at}


class FixedCutoff:
    """Hard classification at a preset probability threshold; nothing to estimate."""

    name = "fixed_cutoff"
    output = "class"
    requires_estimation = False

    def __init__(self, threshold: float = FIXED_CUTOFF):
        if not 0.0 < threshold < 1.0:
            raise ValueError("threshold must lie strictly between 0 and 1.")
        self.threshold = float(threshold)

    def fit(self, y_pred=None, y_true=None) -> "FixedCutoff":
        return self

    def transform(self, y_pred) -> np.ndarray:
        return (np.asarray(y_pred, dtype=float).ravel() >= self.threshold).astype(int)

    def __repr__(self) -> str:
        return f"FixedCutoff(threshold={self.threshold})"


class OptimizedCutoff:
    """Probability threshold chosen to maximize a class metric on held-back predictions.

    Ties go to the candidate closest to 0.5.
    """

    name = "optimized_cutoff"
    output = "class"
    requires_estimation = True

    def __init__(self, metric: str = "j_index", grid: Optional[np.ndarray] = None):
        if metric not in _CUTOFF_METRICS:
            raise ValueError(f"Unknown cutoff metric: {metric}")
        self.metric = metric
        self.grid = np.linspace(0.01, 0.99, 99) if grid is None else np.asarray(grid, dtype=float)
        if self.grid.size == 0:
            raise ValueError("Cutoff grid is empty.")
        self.threshold_: Optional[float] = None
        self.score_: Optional[float] = None

    def fit(self, y_pred, y_true) -> "OptimizedCutoff":
        y_pred = np.asarray(y_pred, dtype=float).ravel()
        y_true = np.asarray(y_true, dtype=int).ravel()
        if y_pred.shape != y_true.shape:
            raise ValueError(f"y_pred has shape {y_pred.shape} but y_true has shape {y_true.shape}.")
        if np.unique(y_true).size < 2:
            logger.warning("Cutoff search saw a single class; keeping threshold %.2f.", FIXED_CUTOFF)
            self.threshold_ = FIXED_CUTOFF
            self.score_ = float("nan")
            return self

        score_fn = _CUTOFF_METRICS[self.metric]
        scores = np.array([score_fn(y_true, y_pred, t) for t in self.grid])
        best = np.flatnonzero(np.isclose(scores, scores.max()))
        pick = best[np.argmin(np.abs(self.grid[best] - 0.5))]
        self.threshold_ = float(self.grid[pick])
        self.score_ = float(scores[pick])
        logger.debug("Selected cutoff %.3f (%s=%.4f)", self.threshold_, self.metric, self.score_)
        return self

    def transform(self, y_pred) -> np.ndarray:
        if self.threshold_ is None:
            raise RuntimeError("OptimizedCutoff must be fitted before transform().")
        return (np.asarray(y_pred, dtype=float).ravel() >= self.threshold_).astype(int)

    @property
    def threshold(self) -> Optional[float]:
        return self.threshold_

    def __repr__(self) -> str:
        return f"OptimizedCutoff(metric={self.metric!r})"


def make_cutoff(method: str):
    if method == "none":
        return None
    if method == "fixed":
        return FixedCutoff()
    if method in _CUTOFF_METRICS:
        return OptimizedCutoff(metric=method)
    raise ValueError(f"Unknown cutoff method: {method}")
