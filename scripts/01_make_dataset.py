import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import argparse  # noqa: E402
import logging  # noqa: E402

from pipesplit.config import LOGS_DIR, SAMPLE_POOL_FILE, TARGET_COL  # noqa: E402
from pipesplit.data.simulate import simulate_classification_pool, simulate_regression_pool  # noqa: E402
from pipesplit.utils.logging import configure_logging, runtime_metadata, write_json  # noqa: E402

logger = logging.getLogger("make_dataset")


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a sample pool for the splitting cases.")
    parser.add_argument("--task", choices=["classification", "regression"], default="classification")
    parser.add_argument("--n-samples", type=int, default=2000)
    parser.add_argument("--n-features", type=int, default=8)
    parser.add_argument("--event-rate", type=float, default=0.3, help="Positive-class share (classification only).")
    parser.add_argument("--seed", type=int, default=2026)
    parser.add_argument("--out-parquet", type=Path, default=SAMPLE_POOL_FILE)
    parser.add_argument("--metadata-json", type=Path, default=None)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    configure_logging(args.log_level)

    if args.n_samples <= 0:
        raise SystemExit("--n-samples must be a positive integer.")
    if args.n_features < 2:
        raise SystemExit("--n-features must be >= 2.")
    if not 0.0 < args.event_rate < 1.0:
        raise SystemExit("--event-rate must lie strictly between 0 and 1.")

    if args.task == "classification":
        df = simulate_classification_pool(
            args.n_samples, n_features=args.n_features, event_rate=args.event_rate, seed=args.seed
        )
    else:
        df = simulate_regression_pool(args.n_samples, n_features=args.n_features, seed=args.seed)

    args.out_parquet.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(args.out_parquet, index=False)
    logger.info("Sample pool: %d rows, %d columns", len(df), df.shape[1])

    meta_path = args.metadata_json or (LOGS_DIR / "make_dataset_metadata.json")
    write_json(
        meta_path,
        {
            "task": args.task,
            "n_samples": args.n_samples,
            "n_features": args.n_features,
            "event_rate": args.event_rate if args.task == "classification" else None,
            "seed": args.seed,
            "target_col": TARGET_COL,
            "columns": df.columns.tolist(),
            "out_parquet": str(args.out_parquet),
            "runtime": runtime_metadata(PROJECT_ROOT),
        },
    )
    print(f"Wrote sample pool to {args.out_parquet}")


if __name__ == "__main__":
    main()
