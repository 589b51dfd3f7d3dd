import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import argparse  # noqa: E402
import logging  # noqa: E402

import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

from pipesplit.config import (  # noqa: E402
    CASE6_POTATO_SIZE,
    CV_FOLDS,
    RANDOM_SEEDS,
    SAMPLE_POOL_FILE,
    TARGET_COL,
    TRAINING,
)
from pipesplit.data.ingest import load_sample_pool  # noqa: E402
from pipesplit.data.resamples import fold_assignments, make_resamples  # noqa: E402
from pipesplit.data.splits import (  # noqa: E402
    SplitCase,
    make_partition,
    partition_summary,
    partition_to_frame,
)
from pipesplit.data.validate import assert_required_columns, is_binary_target  # noqa: E402
from pipesplit.evaluation.subset_adequacy import partition_adequacy  # noqa: E402
from pipesplit.reporting.figures import plot_partition  # noqa: E402
from pipesplit.utils.logging import configure_logging, runtime_metadata, write_json  # noqa: E402

logger = logging.getLogger("split_cases")


def write_case_artifacts(df: pd.DataFrame, case: SplitCase, seed: int, outdir: Path, n_folds: int) -> dict:
    y = df[TARGET_COL].to_numpy()
    stratify = is_binary_target(y)
    partition = make_partition(y, case, seed=seed, stratify=stratify)

    out_splits = outdir / "splits"
    out_tables = outdir / "tables"
    out_figures = outdir / "figures"
    for d in [out_splits, out_tables, out_figures]:
        d.mkdir(parents=True, exist_ok=True)

    assign_path = out_splits / f"partition_case{int(case)}_seed{seed}.csv"
    partition_to_frame(partition).to_csv(assign_path, index=False)

    summary = partition_summary(partition, y)
    adequacy = partition_adequacy(partition, y)
    summary = summary.merge(adequacy[["subset", "adequate", "reason"]], on="subset", how="left")
    summary_path = out_tables / f"partition_summary_case{int(case)}_seed{seed}.csv"
    summary.to_csv(summary_path, index=False)

    fig_path = out_figures / f"partition_case{int(case)}_seed{seed}.png"
    plot_partition(summary, fig_path, f"Case {int(case)} partition (seed={seed})")

    record = {
        "case": int(case),
        "subsets": {name: int(idx.size) for name, idx in partition.subsets.items()},
        "stratified": stratify,
        "partition_csv": str(assign_path),
        "summary_csv": str(summary_path),
        "figure_png": str(fig_path),
    }

    if case.resampled:
        resamples = make_resamples(
            y,
            partition[TRAINING],
            n_folds,
            seed,
            stratify=stratify,
            potato_size=CASE6_POTATO_SIZE if case == SplitCase.RESAMPLED_WITH_POTATO else None,
        )
        fold_id = fold_assignments(resamples, partition[TRAINING])
        folds_path = out_splits / f"cvfolds_case{int(case)}_seed{seed}.npz"
        arrays = {"train_idx": partition[TRAINING], "fold_id": fold_id}
        for rs in resamples:
            if rs.potato is not None:
                arrays[f"potato_fold{rs.fold}"] = rs.potato
        np.savez_compressed(folds_path, **arrays)
        record["cv_folds"] = n_folds
        record["cvfolds_npz"] = str(folds_path)

    return record


def main() -> None:
    parser = argparse.ArgumentParser(description="Partition the sample pool under splitting cases 1-6.")
    parser.add_argument("--data", type=Path, default=SAMPLE_POOL_FILE, help="Sample pool (parquet/csv/xlsx).")
    parser.add_argument("--case", default="all", help="Case number 1-6, or 'all'.")
    parser.add_argument("--seed", type=int, default=2026)
    parser.add_argument(
        "--allow-any-seed",
        action="store_true",
        help="Allow seeds not listed in pipesplit/config.py RANDOM_SEEDS.",
    )
    parser.add_argument("--cv-folds", type=int, default=CV_FOLDS)
    parser.add_argument("--nrows", type=int, default=None)
    parser.add_argument("--outdir", type=Path, default=Path("outputs"))
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    configure_logging(args.log_level)

    if (not args.allow_any_seed) and (args.seed not in RANDOM_SEEDS):
        raise SystemExit(f"--seed must be one of {RANDOM_SEEDS} unless --allow-any-seed is provided.")
    if args.nrows is not None and args.nrows <= 0:
        raise SystemExit("--nrows must be a positive integer.")
    if args.cv_folds < 2:
        raise SystemExit("--cv-folds must be >= 2.")
    if args.case == "all":
        cases = list(SplitCase)
    else:
        try:
            cases = [SplitCase(int(args.case))]
        except ValueError:
            raise SystemExit(f"--case must be 1-6 or 'all'; got {args.case!r}.") from None
    if not args.data.exists():
        raise SystemExit(f"Sample pool not found: {args.data}. Run scripts/01_make_dataset.py first.")

    df = load_sample_pool(args.data, nrows=args.nrows)
    try:
        assert_required_columns(df, [TARGET_COL])
    except ValueError as exc:
        raise SystemExit(str(exc)) from None

    records = []
    for case in cases:
        try:
            records.append(write_case_artifacts(df, case, args.seed, args.outdir, args.cv_folds))
        except ValueError as exc:
            raise SystemExit(f"Case {int(case)}: {exc}") from None

    write_json(
        args.outdir / "logs" / "split_run_metadata.json",
        {
            "data": str(args.data),
            "n_rows": int(len(df)),
            "seed": args.seed,
            "cases": records,
            "runtime": runtime_metadata(PROJECT_ROOT),
        },
    )
    print(f"Wrote partition artifacts to {args.outdir}/")


if __name__ == "__main__":
    main()
