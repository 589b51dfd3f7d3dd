"""Model pipeline that records which rows each stage consumed.

A pipeline is a supervised model (with its preprocessors, built by an
estimator factory) followed by zero or more postprocessors. The model is fit
on one set of rows; estimable postprocessors are fit on model predictions for
a *different* set of rows; the finished pipeline is scored on rows neither
stage has seen. Any overlap raises :class:`LeakageError`.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from pipesplit.config import FIXED_CUTOFF, POSITIVE_LABEL, POTATO, TRAINING
from pipesplit.errors import LeakageError, PartitionError, TestSetReusedError
from pipesplit.evaluation.metrics import (
    compute_binary_metrics,
    compute_class_metrics,
    compute_regression_metrics,
    confusion_counts,
)

logger = logging.getLogger(__name__)

MODEL_ROLE = "model"
POSTPROCESSOR_ROLE = "postprocessor"


def _as_rows(rows) -> np.ndarray:
    rows = np.asarray(rows, dtype=int).ravel()
    if rows.size == 0:
        raise ValueError("Row selection is empty.")
    return rows


def _select(X, rows: np.ndarray):
    if isinstance(X, (pd.DataFrame, pd.Series)):
        return X.iloc[rows]
    return np.asarray(X)[rows]


class ModelPipeline:
    """Preprocessor(s) + model + postprocessor(s), fitted under partition discipline.

    Parameters
    ----------
    estimator_factory : callable
        Zero-argument callable returning a fresh, unfitted scikit-learn
        estimator (usually a ``Pipeline`` whose first step is the preprocessor).
    postprocessors : sequence
        Objects with ``fit(y_pred, y_true)``, ``transform(y_pred)``,
        ``requires_estimation`` and ``output`` (``"probability"``,
        ``"numeric"`` or ``"class"``). Applied in order; a class-output
        postprocessor must come last.
    task : {"classification", "regression"}
        Classification models report the probability of ``POSITIVE_LABEL``.

    Rows scored by a final (``once=True``) evaluation stay reserved for the
    lifetime of the pipeline, across refits.
    """

    def __init__(
        self,
        estimator_factory: Callable[[], object],
        postprocessors: Sequence[object] = (),
        task: str = "classification",
    ):
        if task not in ("classification", "regression"):
            raise ValueError(f"Unknown task: {task}")
        self.estimator_factory = estimator_factory
        self.postprocessors: List[object] = [p for p in postprocessors if p is not None]
        self.task = task
        self._check_postprocessors()

        self.estimator_ = None
        self.postprocessors_fitted_ = False
        self.postprocessor_strategy_: Optional[str] = None
        self.fitted_rows: Dict[str, np.ndarray] = {}
        self._held_out_rows: List[np.ndarray] = []

    def _check_postprocessors(self) -> None:
        for i, pp in enumerate(self.postprocessors):
            output = getattr(pp, "output", None)
            if output == "class" and i != len(self.postprocessors) - 1:
                raise ValueError(f"{pp!r} produces hard classes and must be the last postprocessor.")
            if self.task == "regression" and output in ("probability", "class"):
                raise ValueError(f"{pp!r} needs class probabilities; it cannot follow a regression model.")
            if self.task == "classification" and output == "numeric":
                raise ValueError(f"{pp!r} calibrates numeric outcomes; use platt or isotonic for classification.")

    @property
    def requires_estimation(self) -> bool:
        return any(getattr(pp, "requires_estimation", False) for pp in self.postprocessors)

    @property
    def cutoff(self):
        if self.postprocessors and getattr(self.postprocessors[-1], "output", None) == "class":
            return self.postprocessors[-1]
        return None

    def _check_not_held_out(self, rows: np.ndarray, action: str) -> None:
        for prior in self._held_out_rows:
            shared = np.intersect1d(rows, prior)
            if shared.size:
                raise TestSetReusedError(
                    f"Cannot {action}: {shared.size} rows were already used for a final evaluation."
                )

    # ------------------------------------------------------------------ fitting

    def fit_model(self, X, y, rows) -> "ModelPipeline":
        rows = _as_rows(rows)
        self._check_not_held_out(rows, "fit the model")
        estimator = self.estimator_factory()
        estimator.fit(_select(X, rows), _select(np.asarray(y), rows))
        self.estimator_ = estimator
        self.postprocessors_fitted_ = not self.requires_estimation
        self.postprocessor_strategy_ = None
        self.fitted_rows = {MODEL_ROLE: np.sort(rows)}
        logger.debug("Fitted model on %d rows", rows.size)
        return self

    def _fit_chain(self, y_pred: np.ndarray, y_true: np.ndarray) -> None:
        out = y_pred
        for pp in self.postprocessors:
            if getattr(pp, "requires_estimation", False):
                pp.fit(out, y_true)
            else:
                pp.fit()
            out = pp.transform(out)
        self.postprocessors_fitted_ = True

    def fit_postprocessors(self, X, y, rows) -> "ModelPipeline":
        """Fit estimable postprocessors on model predictions for ``rows``.

        ``rows`` must be disjoint from the rows the model was fit on.
        """
        if self.estimator_ is None:
            raise RuntimeError("fit_model() must be called before fit_postprocessors().")
        rows = _as_rows(rows)
        self._check_not_held_out(rows, "fit postprocessors")
        shared = np.intersect1d(rows, self.fitted_rows[MODEL_ROLE])
        if shared.size:
            raise LeakageError(
                f"Postprocessor rows overlap {shared.size} rows already used to fit the model."
            )
        y_pred = self.predict_raw(X, rows)
        self._fit_chain(y_pred, np.asarray(y)[rows])
        self.fitted_rows[POSTPROCESSOR_ROLE] = np.sort(rows)
        self.postprocessor_strategy_ = "potato"
        logger.debug("Fitted %d postprocessor(s) on %d held-back rows", len(self.postprocessors), rows.size)
        return self

    def fit_postprocessors_out_of_fold(self, X, y, resamples) -> "ModelPipeline":
        """Fit estimable postprocessors on out-of-fold predictions.

        Each resample's assessment rows are predicted by a model fit on that
        resample's analysis rows only; the pooled predictions then feed the
        postprocessors. The final model fitted by :meth:`fit_model` is left
        untouched.
        """
        if self.estimator_ is None:
            raise RuntimeError("fit_model() must be called before fit_postprocessors_out_of_fold().")
        y_arr = np.asarray(y)
        oof_rows: List[np.ndarray] = []
        oof_pred: List[np.ndarray] = []
        for rs in resamples:
            shared = np.intersect1d(rs.analysis, rs.assessment)
            if shared.size:
                raise LeakageError(f"Fold {rs.fold}: {shared.size} assessment rows are also analysis rows.")
            self._check_not_held_out(np.union1d(rs.analysis, rs.assessment), "fit postprocessors out of fold")
            est = self.estimator_factory()
            est.fit(_select(X, rs.analysis), y_arr[rs.analysis])
            oof_rows.append(rs.assessment)
            oof_pred.append(self._predict_with(est, _select(X, rs.assessment)))
        rows = np.concatenate(oof_rows)
        if np.unique(rows).size != rows.size:
            raise LeakageError("Out-of-fold predictions cover some rows more than once.")
        pred = np.concatenate(oof_pred)
        if np.isnan(pred).any():
            raise RuntimeError("OOF predictions contain NaN; cannot fit postprocessors.")
        self._fit_chain(pred, y_arr[rows])
        self.fitted_rows[POSTPROCESSOR_ROLE] = np.sort(rows)
        self.postprocessor_strategy_ = "out_of_fold"
        return self

    def fit(self, X, y, partition) -> "ModelPipeline":
        """Fit the model on ``training`` and, when needed, postprocessors on ``potato``."""
        self.fit_model(X, y, partition[TRAINING])
        if self.requires_estimation:
            if not partition.has(POTATO):
                raise PartitionError(
                    f"Postprocessors {self.postprocessors!r} need estimation but case "
                    f"{int(partition.case)} has no potato subset."
                )
            self.fit_postprocessors(X, y, partition[POTATO])
        else:
            self.prepare_postprocessors()
            if partition.has(POTATO):
                logger.info("Potato subset left unused: no postprocessor requires estimation.")
        return self

    def prepare_postprocessors(self) -> None:
        for pp in self.postprocessors:
            pp.fit()
        self.postprocessors_fitted_ = True

    # --------------------------------------------------------------- prediction

    def _predict_with(self, estimator, X_rows) -> np.ndarray:
        if self.task == "regression":
            return np.asarray(estimator.predict(X_rows), dtype=float)
        proba = estimator.predict_proba(X_rows)
        if proba.ndim != 2 or proba.shape[1] < 2:
            raise ValueError("predict_proba output has unexpected shape.")
        classes = list(getattr(estimator, "classes_", range(proba.shape[1])))
        return proba[:, classes.index(POSITIVE_LABEL)]

    def predict_raw(self, X, rows) -> np.ndarray:
        if self.estimator_ is None:
            raise RuntimeError("Pipeline is not fitted.")
        return self._predict_with(self.estimator_, _select(X, _as_rows(rows)))

    def predict_stages(self, X, rows) -> Dict[str, np.ndarray]:
        """Return the raw model output, the final continuous output and (if any) hard classes."""
        if not self.postprocessors_fitted_:
            raise RuntimeError("Postprocessors are not fitted.")
        raw = self.predict_raw(X, rows)
        stages = {"raw": raw, "continuous": raw}
        out = raw
        for pp in self.postprocessors:
            out = pp.transform(out)
            if getattr(pp, "output", None) == "class":
                stages["class"] = out
            else:
                stages["continuous"] = out
        return stages

    def predict(self, X, rows) -> np.ndarray:
        stages = self.predict_stages(X, rows)
        return stages.get("class", stages["continuous"])

    # --------------------------------------------------------------- evaluation

    def _consumed_rows(self) -> np.ndarray:
        if not self.fitted_rows:
            return np.array([], dtype=int)
        return np.concatenate(list(self.fitted_rows.values()))

    def evaluate(self, X, y, rows, *, once: bool = True) -> Dict[str, float]:
        """Score the complete pipeline on rows no stage was fitted on.

        With ``once=True`` (the held-out test set) any later evaluation or
        fit touching the same rows raises :class:`TestSetReusedError`.
        """
        rows = _as_rows(rows)
        shared = np.intersect1d(rows, self._consumed_rows())
        if shared.size:
            raise LeakageError(f"Evaluation rows overlap {shared.size} rows used to fit the pipeline.")
        self._check_not_held_out(rows, "evaluate")

        stages = self.predict_stages(X, rows)
        y_true = np.asarray(y)[rows]
        calibrated = any(getattr(pp, "output", None) != "class" for pp in self.postprocessors)

        out: Dict[str, float] = {"n": int(rows.size)}
        if self.task == "classification":
            out.update(compute_binary_metrics(y_true, stages["continuous"]))
            y_class = stages.get("class")
            if y_class is None:
                y_class = (stages["continuous"] >= FIXED_CUTOFF).astype(int)
            out.update(compute_class_metrics(y_true, y_class))
            out.update(confusion_counts(y_true, y_class))
            threshold = getattr(self.cutoff, "threshold", None)
            out["cutoff"] = float(FIXED_CUTOFF if threshold is None else threshold)
            if calibrated:
                out.update({f"uncalibrated_{k}": v for k, v in compute_binary_metrics(y_true, stages["raw"]).items()})
        else:
            out.update(compute_regression_metrics(y_true, stages["continuous"]))
            if calibrated:
                out.update(
                    {f"uncalibrated_{k}": v for k, v in compute_regression_metrics(y_true, stages["raw"]).items()}
                )

        if once:
            self._held_out_rows.append(np.sort(rows))
        return out
