"""Run one data-splitting case end to end.

Partition the pool, fit the model (and postprocessors) on the subsets the
case designates, optionally score a validation set or resamples of the
training set, then evaluate the finished pipeline exactly once on test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from pipesplit.config import CASE6_POTATO_SIZE, CV_FOLDS, TEST, TRAINING, VALIDATION
from pipesplit.data.resamples import Resample, make_resamples, merge_potato
from pipesplit.data.splits import Partition, SplitCase, make_holdout_split, make_partition
from pipesplit.errors import PartitionError
from pipesplit.pipeline import ModelPipeline
from pipesplit.postprocessing.calibration import make_calibrator
from pipesplit.postprocessing.cutoffs import make_cutoff

logger = logging.getLogger(__name__)

STRATEGY_CHOICES = ("potato", "out_of_fold")


@dataclass
class CaseResult:
    case: SplitCase
    partition: Partition
    pipeline: ModelPipeline
    test_metrics: Dict[str, float]
    validation_metrics: Optional[Dict[str, float]] = None
    fold_metrics: Optional[pd.DataFrame] = None
    resamples: Optional[List[Resample]] = None
    postprocessor_strategy: str = "none"


def make_pipeline_factory(
    estimator_factory: Callable[[], object],
    *,
    task: str = "classification",
    calibration: str = "none",
    cutoff: str = "none",
) -> Callable[[], ModelPipeline]:
    """Zero-argument factory giving a fresh pipeline with fresh postprocessors per call."""

    def pipeline_factory() -> ModelPipeline:
        postprocessors = [make_calibrator(calibration), make_cutoff(cutoff)]
        return ModelPipeline(estimator_factory, postprocessors=postprocessors, task=task)

    # Surface bad method names / task combinations before any data is touched.
    pipeline_factory()
    return pipeline_factory


def aggregate_fold_metrics(fold_df: pd.DataFrame) -> Tuple[Dict[str, float], Dict[str, float]]:
    metric_cols = [c for c in fold_df.columns if c != "fold" and pd.api.types.is_numeric_dtype(fold_df[c])]
    means = {f"{c}_mean": float(fold_df[c].mean()) for c in metric_cols}
    stds = {f"{c}_std": float(fold_df[c].std(ddof=1)) for c in metric_cols}
    return means, stds


def _fit_fold(pipeline: ModelPipeline, X, y, rs: Resample, *, strategy: str, n_folds: int, seed: int, stratify: bool):
    if strategy == "potato":
        pipeline.fit_model(X, y, rs.analysis)
        pipeline.fit_postprocessors(X, y, rs.potato)
        return
    # Without a potato strategy the potato portion (if any) goes back to the model.
    rows = merge_potato(rs).analysis
    pipeline.fit_model(X, y, rows)
    if strategy == "out_of_fold":
        inner = make_resamples(y, rows, n_folds, seed + 100 * rs.fold, stratify=stratify)
        pipeline.fit_postprocessors_out_of_fold(X, y, inner)
    else:
        pipeline.prepare_postprocessors()


def run_case(
    X: pd.DataFrame,
    y,
    case,
    *,
    pipeline_factory: Callable[[], ModelPipeline],
    seed: int,
    proportions: Optional[Mapping[str, float]] = None,
    n_folds: int = CV_FOLDS,
    potato_size: float = CASE6_POTATO_SIZE,
    postprocessor_strategy: str = "potato",
    stratify: Optional[bool] = None,
) -> CaseResult:
    case = SplitCase(case)
    if postprocessor_strategy not in STRATEGY_CHOICES:
        raise ValueError(f"Unknown postprocessor strategy: {postprocessor_strategy}")

    y_arr = np.asarray(y).ravel()
    if len(X) != y_arr.size:
        raise ValueError(f"X has {len(X)} rows but y has {y_arr.size}.")

    template = pipeline_factory()
    if stratify is None:
        stratify = template.task == "classification"
    needs_estimation = template.requires_estimation
    strategy = postprocessor_strategy if needs_estimation else "none"

    if needs_estimation:
        if postprocessor_strategy == "out_of_fold" and not case.resampled:
            raise ValueError(f"Out-of-fold postprocessor estimation needs a resampled case (5 or 6), not {int(case)}.")
        if postprocessor_strategy == "potato" and not case.estimates_postprocessor:
            raise PartitionError(
                f"Case {int(case)} has no potato subset for postprocessor estimation; "
                "use case 3, 4 or 6, or the out_of_fold strategy with case 5."
            )

    partition = make_partition(y_arr, case, proportions, seed=seed, stratify=stratify)

    if not case.resampled:
        pipeline = pipeline_factory()
        pipeline.fit(X, y_arr, partition)
        validation_metrics = None
        if partition.has(VALIDATION):
            validation_metrics = pipeline.evaluate(X, y_arr, partition[VALIDATION], once=False)
            logger.info("Validation metrics (case %d): %s", int(case), _brief(validation_metrics))
        test_metrics = pipeline.evaluate(X, y_arr, partition[TEST], once=True)
        logger.info("Test metrics (case %d): %s", int(case), _brief(test_metrics))
        return CaseResult(
            case=case,
            partition=partition,
            pipeline=pipeline,
            test_metrics=test_metrics,
            validation_metrics=validation_metrics,
            postprocessor_strategy=strategy,
        )

    split_potato = case == SplitCase.RESAMPLED_WITH_POTATO
    resamples = make_resamples(
        y_arr,
        partition[TRAINING],
        n_folds,
        seed,
        stratify=stratify,
        potato_size=potato_size if split_potato else None,
    )

    rows: List[dict] = []
    for rs in resamples:
        fold_pipeline = pipeline_factory()
        _fit_fold(fold_pipeline, X, y_arr, rs, strategy=strategy, n_folds=n_folds, seed=seed, stratify=stratify)
        metrics = fold_pipeline.evaluate(X, y_arr, rs.assessment, once=False)
        rows.append({"fold": rs.fold, **metrics})
    fold_df = pd.DataFrame(rows).sort_values("fold", kind="mergesort").reset_index(drop=True)
    means, _stds = aggregate_fold_metrics(fold_df)
    logger.info("Resampled metrics (case %d, %d folds): %s", int(case), len(resamples), _brief(means))

    # Final fit on the training subset, mirroring what each fold did.
    pipeline = pipeline_factory()
    training = partition[TRAINING]
    if strategy == "potato":
        fit_pos, potato_pos = make_holdout_split(
            np.zeros((training.size, 1)), y_arr[training], test_size=potato_size, seed=seed, stratify=stratify
        )
        pipeline.fit_model(X, y_arr, np.sort(training[fit_pos]))
        pipeline.fit_postprocessors(X, y_arr, np.sort(training[potato_pos]))
    elif strategy == "out_of_fold":
        pipeline.fit_model(X, y_arr, training)
        pipeline.fit_postprocessors_out_of_fold(X, y_arr, [merge_potato(rs) for rs in resamples])
    else:
        pipeline.fit_model(X, y_arr, training)
        pipeline.prepare_postprocessors()

    test_metrics = pipeline.evaluate(X, y_arr, partition[TEST], once=True)
    logger.info("Test metrics (case %d): %s", int(case), _brief(test_metrics))
    return CaseResult(
        case=case,
        partition=partition,
        pipeline=pipeline,
        test_metrics=test_metrics,
        fold_metrics=fold_df,
        resamples=resamples,
        postprocessor_strategy=strategy,
    )


def _brief(metrics: Mapping[str, float]) -> str:
    keys = [k for k in metrics if k.split("_mean")[0] in ("roc_auc", "brier", "rmse", "r2", "j_index")]
    return ", ".join(f"{k}={metrics[k]:.4f}" for k in keys)
