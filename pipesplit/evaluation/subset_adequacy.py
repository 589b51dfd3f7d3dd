from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np
import pandas as pd

from pipesplit.config import MIN_GROUP_EVENTRATE, MIN_GROUP_N, MIN_GROUP_NEG, MIN_GROUP_POS
from pipesplit.data.validate import is_binary_target
from pipesplit.pipeline import POSTPROCESSOR_ROLE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubsetAdequacy:
    n: int
    n_pos: int
    n_neg: int
    event_rate: float
    adequate: bool
    reason: str


def evaluate_subset_adequacy(
    y_true: np.ndarray,
    *,
    min_group_n: int = MIN_GROUP_N,
    min_group_pos: int = MIN_GROUP_POS,
    min_group_neg: int = MIN_GROUP_NEG,
    min_group_eventrate: Optional[float] = MIN_GROUP_EVENTRATE,
    binary: bool = True,
) -> SubsetAdequacy:
    """Check that a subset is large enough (and, for binary targets, balanced enough) to fit on.

    For continuous targets only the row count is checked.
    """
    y = np.asarray(y_true)
    n = int(y.size)
    if binary:
        y = y.astype(int)
        n_pos = int(np.sum(y == 1))
        n_neg = int(np.sum(y == 0))
        event_rate = float(n_pos / n) if n > 0 else np.nan
    else:
        n_pos = n_neg = 0
        event_rate = np.nan

    reasons = []
    if n < int(min_group_n):
        reasons.append(f"n<{int(min_group_n)}")
    if binary:
        if n_pos < int(min_group_pos):
            reasons.append(f"pos<{int(min_group_pos)}")
        if n_neg < int(min_group_neg):
            reasons.append(f"neg<{int(min_group_neg)}")
        if min_group_eventrate is not None and not np.isnan(event_rate):
            if event_rate < float(min_group_eventrate):
                reasons.append(f"event_rate<{float(min_group_eventrate):.4f}")

    reason = ";".join(reasons)
    return SubsetAdequacy(
        n=n,
        n_pos=n_pos,
        n_neg=n_neg,
        event_rate=event_rate,
        adequate=(len(reasons) == 0),
        reason=reason,
    )


def partition_adequacy(partition, y, **thresholds) -> pd.DataFrame:
    """One adequacy row per subset of a partition; inadequate subsets are logged as warnings."""
    y_arr = np.asarray(y).ravel()
    binary = is_binary_target(y_arr)
    rows = []
    for name, idx in partition.subsets.items():
        adequacy = evaluate_subset_adequacy(y_arr[idx], binary=binary, **thresholds)
        if not adequacy.adequate:
            logger.warning("Subset %r of case %d is thin: %s", name, int(partition.case), adequacy.reason)
        rows.append({"subset": name, **asdict(adequacy)})
    return pd.DataFrame(rows)


def postprocessor_adequacy(pipeline, y, **thresholds) -> Optional[SubsetAdequacy]:
    """Adequacy of the rows a pipeline's postprocessors were estimated on.

    Returns ``None`` when nothing was estimated. A thin estimation set is
    logged as a warning.
    """
    rows = pipeline.fitted_rows.get(POSTPROCESSOR_ROLE)
    if rows is None:
        return None
    y_arr = np.asarray(y).ravel()
    adequacy = evaluate_subset_adequacy(y_arr[rows], binary=is_binary_target(y_arr), **thresholds)
    if not adequacy.adequate:
        logger.warning(
            "Postprocessors were estimated on a thin set of %d rows: %s", adequacy.n, adequacy.reason
        )
    return adequacy
