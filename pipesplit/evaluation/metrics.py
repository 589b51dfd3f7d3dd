from typing import Dict

import numpy as np
from sklearn.linear_model import LinearRegression, LogisticRegression
from sklearn.metrics import (
    average_precision_score,
    brier_score_loss,
    confusion_matrix,
    mean_absolute_error,
    mean_squared_error,
    r2_score,
    roc_auc_score,
)

BINARY_METRICS = ("roc_auc", "pr_auc", "brier", "calibration_slope", "calibration_intercept")
CLASS_METRICS = ("accuracy", "sensitivity", "specificity", "j_index", "f1")
REGRESSION_METRICS = ("rmse", "mae", "r2", "calibration_slope", "calibration_intercept")


def calibration_slope_intercept(y_true, y_prob):
    eps = 1e-6
    y_prob = np.clip(y_prob, eps, 1 - eps)
    logit = np.log(y_prob / (1 - y_prob)).reshape(-1, 1)
    # Near-unregularized logistic regression on the logit scores. (penalty defaults to L2; avoid
    # passing penalty explicitly to keep compatibility with newer sklearn versions.)
    model = LogisticRegression(C=1e6, solver="lbfgs", max_iter=1000)
    model.fit(logit, y_true)
    return float(model.coef_[0][0]), float(model.intercept_[0])


def regression_calibration_slope_intercept(y_true, y_pred):
    """Slope and intercept of observed outcomes regressed on predictions (ideal: 1, 0)."""
    model = LinearRegression()
    model.fit(np.asarray(y_pred, dtype=float).reshape(-1, 1), np.asarray(y_true, dtype=float))
    return float(model.coef_[0]), float(model.intercept_)


def compute_binary_metrics(y_true, y_prob) -> Dict[str, float]:
    y = np.asarray(y_true, dtype=int)
    p = np.asarray(y_prob, dtype=float)
    out = {m: np.nan for m in BINARY_METRICS}
    if y.size == 0:
        return out
    out["brier"] = float(brier_score_loss(y, p))
    # Rank and calibration metrics are undefined with a single class present.
    if np.unique(y).size >= 2:
        slope, intercept = calibration_slope_intercept(y, p)
        out["roc_auc"] = float(roc_auc_score(y, p))
        out["pr_auc"] = float(average_precision_score(y, p))
        out["calibration_slope"] = slope
        out["calibration_intercept"] = intercept
    return out


def compute_class_metrics(y_true, y_class) -> Dict[str, float]:
    y = np.asarray(y_true, dtype=int)
    c = np.asarray(y_class, dtype=int)
    if y.size == 0:
        return {m: np.nan for m in CLASS_METRICS}
    tn, fp, fn, tp = confusion_matrix(y, c, labels=[0, 1]).ravel()
    sens = tp / (tp + fn) if (tp + fn) > 0 else np.nan
    spec = tn / (tn + fp) if (tn + fp) > 0 else np.nan
    f1_denom = 2 * tp + fp + fn
    return {
        "accuracy": float((tp + tn) / y.size),
        "sensitivity": float(sens),
        "specificity": float(spec),
        "j_index": float(sens + spec - 1.0),
        "f1": float(2 * tp / f1_denom) if f1_denom > 0 else np.nan,
    }


def confusion_counts(y_true, y_class) -> Dict[str, int]:
    tn, fp, fn, tp = confusion_matrix(np.asarray(y_true, dtype=int), np.asarray(y_class, dtype=int), labels=[0, 1]).ravel()
    return {"tn": int(tn), "fp": int(fp), "fn": int(fn), "tp": int(tp)}


def compute_regression_metrics(y_true, y_pred) -> Dict[str, float]:
    y = np.asarray(y_true, dtype=float)
    p = np.asarray(y_pred, dtype=float)
    out = {m: np.nan for m in REGRESSION_METRICS}
    if y.size == 0:
        return out
    out["rmse"] = float(np.sqrt(mean_squared_error(y, p)))
    out["mae"] = float(mean_absolute_error(y, p))
    if y.size >= 2:
        out["r2"] = float(r2_score(y, p))
    if np.unique(p).size >= 2:
        slope, intercept = regression_calibration_slope_intercept(y, p)
        out["calibration_slope"] = slope
        out["calibration_intercept"] = intercept
    return out
