from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import ShuffleSplit, StratifiedShuffleSplit

from pipesplit.config import CARVE_ORDER, CASE_PROPORTIONS, PROPORTION_TOLERANCE, TRAINING
from pipesplit.data.validate import is_binary_target
from pipesplit.errors import PartitionError

logger = logging.getLogger(__name__)


class SplitCase(IntEnum):
    """Data-splitting schemes for pipelines with optional postprocessing.

    1: training/test
    2: training/validation/test
    3: training/potato/test
    4: training/potato/validation/test
    5: training/test with V-fold resampling of training
    6: training/test with V-fold resampling, each analysis set split into
       model-fit and potato portions
    """

    TRAIN_TEST = 1
    TRAIN_VALIDATION_TEST = 2
    TRAIN_POTATO_TEST = 3
    TRAIN_POTATO_VALIDATION_TEST = 4
    RESAMPLED = 5
    RESAMPLED_WITH_POTATO = 6

    @property
    def resampled(self) -> bool:
        return self in (SplitCase.RESAMPLED, SplitCase.RESAMPLED_WITH_POTATO)

    @property
    def estimates_postprocessor(self) -> bool:
        return self in (
            SplitCase.TRAIN_POTATO_TEST,
            SplitCase.TRAIN_POTATO_VALIDATION_TEST,
            SplitCase.RESAMPLED_WITH_POTATO,
        )


@dataclass(frozen=True)
class Partition:
    """Disjoint subsets of a sample pool, keyed by subset name.

    Index arrays are positional (0..n-1) and sorted ascending.
    """

    case: SplitCase
    seed: int
    subsets: Dict[str, np.ndarray] = field(default_factory=dict)

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            return self.subsets[name]
        except KeyError:
            raise PartitionError(f"Case {int(self.case)} partition has no {name!r} subset.") from None

    def has(self, name: str) -> bool:
        return name in self.subsets

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.subsets)

    @property
    def n_rows(self) -> int:
        return int(sum(idx.size for idx in self.subsets.values()))


def case_subsets(case) -> Tuple[str, ...]:
    case = SplitCase(case)
    wanted = CASE_PROPORTIONS[int(case)]
    # Report in pipeline order: training first, test last.
    return tuple(name for name in reversed(CARVE_ORDER) if name in wanted)


def default_proportions(case) -> Dict[str, float]:
    return dict(CASE_PROPORTIONS[int(SplitCase(case))])


def _check_proportions(case: SplitCase, proportions: Mapping[str, float]) -> Dict[str, float]:
    expected = set(case_subsets(case))
    given = set(proportions)
    if given != expected:
        raise ValueError(
            f"Case {int(case)} needs proportions for {sorted(expected)}; got {sorted(given)}."
        )
    out = {k: float(v) for k, v in proportions.items()}
    bad = {k: v for k, v in out.items() if not 0.0 < v < 1.0}
    if bad:
        raise ValueError(f"Proportions must lie strictly between 0 and 1: {bad}")
    total = sum(out.values())
    if abs(total - 1.0) > PROPORTION_TOLERANCE:
        raise ValueError(f"Proportions must sum to 1; got {total:.6f}.")
    return out


def make_holdout_split(X, y, test_size: float, seed: int, stratify: bool = True) -> Tuple[np.ndarray, np.ndarray]:
    if stratify:
        splitter = StratifiedShuffleSplit(n_splits=1, test_size=test_size, random_state=seed)
    else:
        splitter = ShuffleSplit(n_splits=1, test_size=test_size, random_state=seed)
    train_idx, test_idx = next(splitter.split(X, y))
    return train_idx, test_idx


def make_partition(
    y,
    case,
    proportions: Optional[Mapping[str, float]] = None,
    *,
    seed: int,
    stratify: bool = True,
) -> Partition:
    """Carve a sample pool into the subsets a splitting case calls for.

    Subsets are carved in the order test, validation, potato; whatever is
    left becomes training. Subset sizes are rounded against the full pool so
    realised proportions are within one row of the requested ones.
    """
    case = SplitCase(case)
    props = _check_proportions(case, proportions if proportions is not None else default_proportions(case))

    y_arr = np.asarray(y).ravel()
    n = int(y_arr.size)
    if stratify and not is_binary_target(y_arr):
        raise ValueError("stratify=True needs a binary target; pass stratify=False for continuous outcomes.")

    remaining = np.arange(n)
    subsets: Dict[str, np.ndarray] = {}
    for name in CARVE_ORDER:
        if name == TRAINING or name not in props:
            continue
        n_sub = int(round(props[name] * n))
        if n_sub <= 0 or n_sub >= remaining.size:
            raise ValueError(
                f"Subset {name!r} would have {n_sub} of {remaining.size} remaining rows; "
                f"pool of {n} is too small for proportions {props}."
            )
        try:
            keep_pos, take_pos = make_holdout_split(
                np.zeros((remaining.size, 1)), y_arr[remaining], test_size=n_sub, seed=seed, stratify=stratify
            )
        except ValueError as exc:
            raise ValueError(f"Could not carve subset {name!r}: {exc}") from exc
        subsets[name] = np.sort(remaining[take_pos])
        remaining = np.sort(remaining[keep_pos])

    subsets[TRAINING] = remaining
    ordered = {name: subsets[name] for name in case_subsets(case)}
    partition = Partition(case=case, seed=int(seed), subsets=ordered)
    assert_disjoint(partition)
    assert_covers(partition, n)
    logger.info(
        "Case %d partition (seed=%d): %s",
        int(case),
        seed,
        ", ".join(f"{k}={v.size}" for k, v in ordered.items()),
    )
    return partition


def assert_disjoint(partition: Partition) -> None:
    names = partition.names
    for i, a in enumerate(names):
        for b in names[i + 1 :]:
            shared = np.intersect1d(partition.subsets[a], partition.subsets[b])
            if shared.size:
                raise PartitionError(f"Subsets {a!r} and {b!r} share {shared.size} rows.")


def assert_covers(partition: Partition, n_rows: int) -> None:
    allidx = np.concatenate([idx for idx in partition.subsets.values()]) if partition.subsets else np.array([], int)
    if allidx.size != n_rows or np.unique(allidx).size != n_rows:
        raise PartitionError(
            f"Partition assigns {allidx.size} rows ({np.unique(allidx).size} unique) to a pool of {n_rows}."
        )
    if n_rows and (allidx.min() < 0 or allidx.max() >= n_rows):
        raise PartitionError("Partition contains indices outside the sample pool.")


def partition_summary(partition: Partition, y) -> pd.DataFrame:
    y_arr = np.asarray(y).ravel()
    binary = is_binary_target(y_arr)
    n = max(partition.n_rows, 1)
    rows = []
    for name, idx in partition.subsets.items():
        row = {"case": int(partition.case), "seed": partition.seed, "subset": name, "n": int(idx.size)}
        row["proportion"] = round(idx.size / n, 6)
        if binary:
            n_pos = int(np.sum(y_arr[idx] == 1))
            row["n_pos"] = n_pos
            row["event_rate"] = round(n_pos / idx.size, 6) if idx.size else np.nan
        else:
            row["y_mean"] = float(np.mean(y_arr[idx])) if idx.size else np.nan
        rows.append(row)
    return pd.DataFrame(rows)


def partition_to_frame(partition: Partition) -> pd.DataFrame:
    parts = [pd.DataFrame({"row_index": idx, "subset": name}) for name, idx in partition.subsets.items()]
    df = pd.concat(parts, ignore_index=True)
    return df.sort_values("row_index", kind="mergesort").reset_index(drop=True)


def partition_from_frame(df: pd.DataFrame, case, seed: int) -> Partition:
    case = SplitCase(case)
    missing = [c for c in ("row_index", "subset") if c not in df.columns]
    if missing:
        raise ValueError(f"Partition table is missing columns: {missing}")
    expected = case_subsets(case)
    found = set(df["subset"].unique().tolist())
    if found != set(expected):
        raise PartitionError(f"Case {int(case)} expects subsets {list(expected)}; table has {sorted(found)}.")
    subsets = {
        name: np.sort(df.loc[df["subset"] == name, "row_index"].to_numpy(dtype=int)) for name in expected
    }
    partition = Partition(case=case, seed=int(seed), subsets=subsets)
    assert_disjoint(partition)
    assert_covers(partition, int(len(df)))
    return partition
