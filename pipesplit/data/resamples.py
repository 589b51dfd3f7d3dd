from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional

import numpy as np
from sklearn.model_selection import KFold, StratifiedKFold

from pipesplit.data.splits import make_holdout_split


@dataclass(frozen=True)
class Resample:
    """One resampling iteration over the training subset.

    All index arrays are positional into the full sample pool. ``potato`` is
    only set when the analysis set was split for postprocessor estimation.
    """

    fold: int
    analysis: np.ndarray
    assessment: np.ndarray
    potato: Optional[np.ndarray] = None


def make_resamples(
    y,
    training_idx: np.ndarray,
    n_folds: int,
    seed: int,
    *,
    stratify: bool = True,
    potato_size: Optional[float] = None,
) -> List[Resample]:
    if n_folds < 2:
        raise ValueError("n_folds must be >= 2.")
    if potato_size is not None and not 0.0 < potato_size < 1.0:
        raise ValueError("potato_size must lie strictly between 0 and 1.")

    training_idx = np.asarray(training_idx, dtype=int)
    y_train = np.asarray(y).ravel()[training_idx]
    if stratify:
        splitter = StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=seed)
    else:
        splitter = KFold(n_splits=n_folds, shuffle=True, random_state=seed)

    out: List[Resample] = []
    for fold, (an_pos, as_pos) in enumerate(splitter.split(np.zeros((training_idx.size, 1)), y_train), start=1):
        analysis = np.sort(training_idx[an_pos])
        assessment = np.sort(training_idx[as_pos])
        potato = None
        if potato_size is not None:
            fit_pos, potato_pos = make_holdout_split(
                np.zeros((analysis.size, 1)),
                np.asarray(y).ravel()[analysis],
                test_size=potato_size,
                seed=seed + fold,
                stratify=stratify,
            )
            potato = np.sort(analysis[potato_pos])
            analysis = np.sort(analysis[fit_pos])
        out.append(Resample(fold=fold, analysis=analysis, assessment=assessment, potato=potato))
    return out


def fold_assignments(resamples: List[Resample], training_idx: np.ndarray) -> np.ndarray:
    """Return the fold id (1-based) of the assessment set holding each training row."""
    training_idx = np.asarray(training_idx, dtype=int)
    lookup = {int(r): i for i, r in enumerate(training_idx)}
    fold_id = np.full(training_idx.size, fill_value=-1, dtype=int)
    for rs in resamples:
        for r in rs.assessment:
            pos = lookup.get(int(r))
            if pos is None:
                raise RuntimeError(f"Assessment row {int(r)} is not part of the training subset.")
            if fold_id[pos] >= 0:
                raise RuntimeError(f"Training row {int(r)} is assessed in more than one fold.")
            fold_id[pos] = rs.fold
    if (fold_id < 0).any():
        raise RuntimeError("Failed to assign all training rows to CV folds.")
    return fold_id


def merge_potato(rs: Resample) -> Resample:
    """Return ``rs`` with its potato portion (if any) folded back into the analysis set."""
    if rs.potato is None:
        return rs
    return replace(rs, analysis=np.union1d(rs.analysis, rs.potato), potato=None)
