from __future__ import annotations

import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import argparse  # noqa: E402
import logging  # noqa: E402
import random  # noqa: E402
from typing import Dict  # noqa: E402

import joblib  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

from pipesplit.config import (  # noqa: E402
    CALIBRATION_DEFAULT,
    CASE6_POTATO_SIZE,
    CUTOFF_DEFAULT,
    CV_FOLDS,
    EXPERIMENT_NAMESPACE,
    N_BOOT_DEFAULT,
    POSTPROCESSOR_STRATEGY_DEFAULT,
    RANDOM_SEEDS,
    SAMPLE_POOL_FILE,
    TARGET_COL,
    TEST,
)
from pipesplit.data.ingest import load_sample_pool  # noqa: E402
from pipesplit.data.splits import SplitCase, partition_summary  # noqa: E402
from pipesplit.data.validate import (  # noqa: E402
    assert_binary_target,
    assert_continuous_target,
    assert_required_columns,
    is_binary_target,
)
from pipesplit.evaluation.bootstrap import bootstrap_metric_draws, summarize_bootstrap_ci  # noqa: E402
from pipesplit.evaluation.calibration import calibration_curve_df, regression_calibration_df  # noqa: E402
from pipesplit.evaluation.subset_adequacy import partition_adequacy, postprocessor_adequacy  # noqa: E402
from pipesplit.models.estimators import MODEL_CHOICES, make_estimator_factory  # noqa: E402
from pipesplit.models.preprocess import infer_categorical_columns  # noqa: E402
from pipesplit.postprocessing.calibration import CALIBRATION_CHOICES  # noqa: E402
from pipesplit.postprocessing.cutoffs import CUTOFF_CHOICES  # noqa: E402
from pipesplit.reporting.figures import plot_calibration_curve  # noqa: E402
from pipesplit.utils.logging import configure_logging, runtime_metadata, write_json  # noqa: E402
from pipesplit.workflow import STRATEGY_CHOICES, aggregate_fold_metrics, make_pipeline_factory, run_case  # noqa: E402

logger = logging.getLogger("fit_pipeline")


def deterministic_run_id(case: int, seed: int, model: str, calibration: str, cutoff: str) -> str:
    return f"{EXPERIMENT_NAMESPACE}_case{case}_seed{seed}_{model}_{calibration}_{cutoff}"


def write_metrics_row(path: Path, row: Dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame([row]).to_csv(path, index=False)


def write_calibration_artifacts(
    *, task: str, y_true: np.ndarray, stages: Dict[str, np.ndarray], out_tables: Path, out_figures: Path, tag: str
) -> Path:
    streams = {"uncalibrated": stages["raw"]}
    if stages["continuous"] is not stages["raw"]:
        streams["calibrated"] = stages["continuous"]

    curves = {}
    for label, arr in streams.items():
        if task == "classification":
            cal_df = calibration_curve_df(y_true, arr)
            curves[label] = (cal_df["mean_predicted"].tolist(), cal_df["fraction_positive"].tolist())
        else:
            cal_df = regression_calibration_df(y_true, arr)
            curves[label] = (cal_df["mean_predicted"].tolist(), cal_df["mean_observed"].tolist())
        cal_df.to_csv(out_tables / f"calibration_curve_test_{label}_{tag}.csv", index=False)

    fig_path = out_figures / f"calibration_test_{tag}.png"
    plot_calibration_curve(
        curves,
        fig_path,
        f"Calibration (Test): {tag}",
        xlabel="Mean predicted" + (" probability" if task == "classification" else ""),
        ylabel="Fraction positive" if task == "classification" else "Mean observed",
    )
    return fig_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Fit and evaluate a model pipeline under one splitting case.")
    parser.add_argument("--data", type=Path, default=SAMPLE_POOL_FILE)
    parser.add_argument("--case", type=int, choices=[int(c) for c in SplitCase], default=3)
    parser.add_argument("--task", choices=["auto", "classification", "regression"], default="auto")
    parser.add_argument("--model", choices=list(MODEL_CHOICES), default="hgb")
    parser.add_argument("--calibration", choices=list(CALIBRATION_CHOICES), default=CALIBRATION_DEFAULT)
    parser.add_argument("--cutoff", choices=list(CUTOFF_CHOICES), default=CUTOFF_DEFAULT)
    parser.add_argument(
        "--postprocessor-strategy",
        choices=list(STRATEGY_CHOICES),
        default=POSTPROCESSOR_STRATEGY_DEFAULT,
        help="Where postprocessors are estimated: a held-back potato set, or out-of-fold predictions.",
    )
    parser.add_argument("--cv-folds", type=int, default=CV_FOLDS)
    parser.add_argument("--potato-size", type=float, default=CASE6_POTATO_SIZE, help="Case 6 potato share.")
    parser.add_argument("--seed", type=int, default=2026)
    parser.add_argument("--allow-any-seed", action="store_true")
    parser.add_argument("--nrows", type=int, default=None)
    parser.add_argument("--n_boot", type=int, default=N_BOOT_DEFAULT)
    parser.add_argument("--run-id", type=str, default=None)
    parser.add_argument("--outdir", type=Path, default=Path("outputs"))
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    if (not args.allow_any_seed) and (args.seed not in RANDOM_SEEDS):
        raise SystemExit(f"--seed must be one of {RANDOM_SEEDS} unless --allow-any-seed is provided.")
    if args.nrows is not None and args.nrows <= 0:
        raise SystemExit("--nrows must be a positive integer.")
    if args.n_boot < 0:
        raise SystemExit("--n_boot must be >= 0.")
    if args.cv_folds < 2:
        raise SystemExit("--cv-folds must be >= 2.")
    if not 0.0 < args.potato_size < 1.0:
        raise SystemExit("--potato-size must lie strictly between 0 and 1.")
    if not args.data.exists():
        raise SystemExit(f"Sample pool not found: {args.data}. Run scripts/01_make_dataset.py first.")

    outdir = args.outdir
    out_metrics = outdir / "metrics"
    out_tables = outdir / "tables"
    out_figures = outdir / "figures"
    out_models = outdir / "models"
    out_logs = outdir / "logs"
    for d in [out_metrics, out_tables, out_figures, out_models, out_logs]:
        d.mkdir(parents=True, exist_ok=True)

    configure_logging(args.log_level)
    random.seed(args.seed)
    np.random.seed(args.seed)

    df = load_sample_pool(args.data, nrows=args.nrows)
    try:
        assert_required_columns(df, [TARGET_COL])
    except ValueError as exc:
        raise SystemExit(str(exc)) from None

    task = args.task
    if task == "auto":
        task = "classification" if is_binary_target(df[TARGET_COL]) else "regression"
    try:
        if task == "classification":
            assert_binary_target(df[TARGET_COL])
        else:
            assert_continuous_target(df[TARGET_COL])
    except ValueError as exc:
        raise SystemExit(str(exc)) from None

    y = df[TARGET_COL].to_numpy(dtype=int if task == "classification" else float)
    feature_cols = [c for c in df.columns if c != TARGET_COL]
    X = df[feature_cols].copy()
    categorical_cols = infer_categorical_columns(X, feature_cols)

    try:
        estimator_factory = make_estimator_factory(args.model, task, feature_cols, categorical_cols, args.seed)
        pipeline_factory = make_pipeline_factory(
            estimator_factory, task=task, calibration=args.calibration, cutoff=args.cutoff
        )
        result = run_case(
            X,
            y,
            args.case,
            pipeline_factory=pipeline_factory,
            seed=args.seed,
            n_folds=args.cv_folds,
            potato_size=args.potato_size,
            postprocessor_strategy=args.postprocessor_strategy,
        )
    except ValueError as exc:
        # PartitionError is a ValueError: a case/postprocessor mismatch is a usage problem.
        raise SystemExit(str(exc)) from None

    run_id = args.run_id or deterministic_run_id(args.case, args.seed, args.model, args.calibration, args.cutoff)
    tag = f"case{args.case}_seed{args.seed}_{args.model}_{args.calibration}_{args.cutoff}"
    base_row = {
        "run_id": run_id,
        "case": args.case,
        "seed": args.seed,
        "task": task,
        "model": args.model,
        "calibration_method": args.calibration,
        "cutoff_method": args.cutoff,
        "postprocessor_strategy": result.postprocessor_strategy,
        **{f"n_{name}": int(idx.size) for name, idx in result.partition.subsets.items()},
    }

    summary = partition_summary(result.partition, y)
    adequacy = partition_adequacy(result.partition, y)
    summary = summary.merge(adequacy[["subset", "adequate", "reason"]], on="subset", how="left")
    summary.to_csv(out_tables / f"partition_summary_{tag}.csv", index=False)
    pp_adequacy = postprocessor_adequacy(result.pipeline, y)

    test_path = out_metrics / f"metrics_test_{tag}.csv"
    write_metrics_row(test_path, {**base_row, **result.test_metrics})

    validation_path = None
    if result.validation_metrics is not None:
        validation_path = out_metrics / f"metrics_validation_{tag}.csv"
        write_metrics_row(validation_path, {**base_row, **result.validation_metrics})

    cv_path = cv_fold_path = None
    if result.fold_metrics is not None:
        cv_fold_path = out_metrics / f"metrics_cv_folds_{tag}.csv"
        result.fold_metrics.to_csv(cv_fold_path, index=False)
        means, stds = aggregate_fold_metrics(result.fold_metrics)
        cv_path = out_metrics / f"metrics_cv_{tag}.csv"
        write_metrics_row(cv_path, {**base_row, "cv_folds": args.cv_folds, **means, **stds})

    pipeline = result.pipeline
    test_idx = result.partition[TEST]
    stages = pipeline.predict_stages(X, test_idx)
    y_test = y[test_idx]

    preds = pd.DataFrame({"row_index": test_idx, "y_true": y_test, "y_pred_raw": stages["raw"]})
    preds["y_pred"] = stages["continuous"]
    if "class" in stages:
        preds["y_class"] = stages["class"]
    preds_path = out_tables / f"preds_test_{tag}.csv"
    preds.to_csv(preds_path, index=False)

    fig_path = write_calibration_artifacts(
        task=task, y_true=y_test, stages=stages, out_tables=out_tables, out_figures=out_figures, tag=tag
    )

    n_boot_effective = args.n_boot
    if args.nrows is not None and args.n_boot > 200:
        n_boot_effective = 200
    draws = bootstrap_metric_draws(
        y_true=y_test, y_pred=stages["continuous"], n_boot=n_boot_effective, seed=args.seed + 101, task=task
    )
    draws.to_csv(out_tables / f"bootstrap_draws_test_{tag}.csv", index=False)
    ci = summarize_bootstrap_ci(draws)
    ci_row = {**base_row, "n_boot": int(n_boot_effective), "ci_method": "bootstrap_percentile"}
    for metric, (lo, hi) in ci.items():
        ci_row[metric] = result.test_metrics.get(metric, np.nan)
        ci_row[f"{metric}_ci95_low"] = lo
        ci_row[f"{metric}_ci95_high"] = hi
    ci_path = out_tables / f"metrics_with_ci_{tag}.csv"
    write_metrics_row(ci_path, ci_row)

    model_path = out_models / f"pipeline_{tag}.joblib"
    joblib.dump(
        {
            "estimator": pipeline.estimator_,
            "postprocessors": pipeline.postprocessors,
            "task": task,
            "fitted_rows": pipeline.fitted_rows,
        },
        model_path,
    )

    meta = {
        "experiment_namespace": EXPERIMENT_NAMESPACE,
        "run_id": run_id,
        "case": args.case,
        "seed": args.seed,
        "task": task,
        "model": args.model,
        "feature_cols": feature_cols,
        "categorical_cols": categorical_cols,
        "calibration_method": args.calibration,
        "cutoff_method": args.cutoff,
        "postprocessor_strategy": result.postprocessor_strategy,
        "cutoff": result.test_metrics.get("cutoff"),
        "subsets": {name: int(idx.size) for name, idx in result.partition.subsets.items()},
        "rows_by_role": {role: int(idx.size) for role, idx in pipeline.fitted_rows.items()},
        "postprocessor_rows_adequate": None if pp_adequacy is None else pp_adequacy.adequate,
        "postprocessor_rows_reason": None if pp_adequacy is None else pp_adequacy.reason,
        "inputs": {"data": str(args.data), "nrows": args.nrows},
        "artifacts": {
            "pipeline_joblib": str(model_path),
            "metrics_test_csv": str(test_path),
            "metrics_validation_csv": str(validation_path) if validation_path else None,
            "metrics_cv_csv": str(cv_path) if cv_path else None,
            "metrics_cv_folds_csv": str(cv_fold_path) if cv_fold_path else None,
            "metrics_with_ci_csv": str(ci_path),
            "preds_test_csv": str(preds_path),
            "calibration_png": str(fig_path),
        },
        "runtime": {**runtime_metadata(PROJECT_ROOT), "n_boot_requested": args.n_boot, "n_boot_effective": n_boot_effective},
    }
    write_json(out_models / f"pipeline_{tag}.meta.json", meta)
    write_json(out_logs / f"run_{run_id}.json", meta)

    print(f"Wrote pipeline artifacts to {outdir}/")


if __name__ == "__main__":
    main()
