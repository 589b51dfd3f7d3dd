from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from sklearn.isotonic import IsotonicRegression
from sklearn.linear_model import LinearRegression, LogisticRegression

logger = logging.getLogger(__name__)

CALIBRATION_CHOICES = ("none", "platt", "isotonic", "linear")


def _safe_clip_probs(y_prob: np.ndarray) -> np.ndarray:
    return np.clip(np.asarray(y_prob, dtype=float), 1e-6, 1.0 - 1e-6)


def _platt_feature(y_prob: np.ndarray) -> np.ndarray:
    p = _safe_clip_probs(y_prob)
    logit = np.log(p / (1.0 - p))
    return logit.reshape(-1, 1)


class _Calibrator:
    """Shared fit/transform shape for calibration postprocessors.

    A calibrator fitted on a target with fewer than two distinct values
    degrades to the identity map.
    """

    name = "calibrator"
    output = "probability"
    requires_estimation = True

    def __init__(self):
        self.model_ = None
        self.identity_ = False

    @property
    def is_fitted(self) -> bool:
        return self.identity_ or self.model_ is not None

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise RuntimeError(f"{type(self).__name__} must be fitted before transform().")

    def fit(self, y_pred, y_true) -> "_Calibrator":
        y_pred = np.asarray(y_pred, dtype=float).ravel()
        y_true = np.asarray(y_true).ravel()
        if y_pred.shape != y_true.shape:
            raise ValueError(f"y_pred has shape {y_pred.shape} but y_true has shape {y_true.shape}.")
        if y_true.size == 0:
            raise ValueError(f"Cannot fit {self.name} calibrator on zero rows.")
        self.model_ = None
        self.identity_ = False
        if np.unique(y_true).size < 2:
            logger.warning("%s calibrator saw a single target value; falling back to identity.", self.name)
            self.identity_ = True
            return self
        self._fit(y_pred, y_true)
        return self

    def transform(self, y_pred) -> np.ndarray:
        self._check_fitted()
        y_pred = np.asarray(y_pred, dtype=float).ravel()
        if self.identity_:
            return y_pred.copy()
        return self._transform(y_pred)

    def _fit(self, y_pred: np.ndarray, y_true: np.ndarray) -> None:
        raise NotImplementedError

    def _transform(self, y_pred: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class PlattCalibrator(_Calibrator):
    name = "platt"

    def _fit(self, y_pred, y_true):
        model = LogisticRegression(max_iter=2000, solver="lbfgs", C=1e6)
        model.fit(_platt_feature(y_pred), y_true.astype(int))
        self.model_ = model

    def _transform(self, y_pred):
        return _safe_clip_probs(self.model_.predict_proba(_platt_feature(y_pred))[:, 1])


class IsotonicCalibrator(_Calibrator):
    name = "isotonic"

    def _fit(self, y_pred, y_true):
        model = IsotonicRegression(out_of_bounds="clip")
        model.fit(_safe_clip_probs(y_pred), y_true.astype(int))
        self.model_ = model

    def _transform(self, y_pred):
        return _safe_clip_probs(self.model_.predict(_safe_clip_probs(y_pred)))


class LinearCalibrator(_Calibrator):
    """Straight-line correction of numeric predictions: observed ~ a + b * predicted."""

    name = "linear"
    output = "numeric"

    def _fit(self, y_pred, y_true):
        model = LinearRegression()
        model.fit(y_pred.reshape(-1, 1), y_true.astype(float))
        self.model_ = model

    def _transform(self, y_pred):
        return self.model_.predict(y_pred.reshape(-1, 1))

    @property
    def intercept_(self) -> float:
        self._check_fitted()
        return 0.0 if self.identity_ else float(self.model_.intercept_)

    @property
    def slope_(self) -> float:
        self._check_fitted()
        return 1.0 if self.identity_ else float(self.model_.coef_[0])


def make_calibrator(method: str) -> Optional[_Calibrator]:
    if method == "none":
        return None
    if method == "platt":
        return PlattCalibrator()
    if method == "isotonic":
        return IsotonicCalibrator()
    if method == "linear":
        return LinearCalibrator()
    raise ValueError(f"Unknown calibration method: {method}")
