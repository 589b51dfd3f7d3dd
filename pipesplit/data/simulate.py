from __future__ import annotations

import numpy as np
import pandas as pd
from sklearn.datasets import make_classification, make_regression

from pipesplit.config import TARGET_COL


def simulate_classification_pool(
    n_samples: int,
    *,
    n_features: int = 8,
    event_rate: float = 0.3,
    seed: int = 2026,
) -> pd.DataFrame:
    """Synthetic binary sample pool with one categorical column.

    The categorical column ``group`` is derived from the first informative
    feature so the preprocessor has something to encode.
    """
    if not 0.0 < event_rate < 1.0:
        raise ValueError("event_rate must be in (0, 1).")
    X, y = make_classification(
        n_samples=n_samples,
        n_features=n_features,
        n_informative=max(2, n_features // 2),
        n_redundant=0,
        weights=[1.0 - event_rate, event_rate],
        flip_y=0.02,
        class_sep=0.8,
        random_state=seed,
    )
    df = pd.DataFrame(X, columns=[f"x{i + 1}" for i in range(n_features)])
    df["group"] = pd.cut(df["x1"], bins=[-np.inf, -0.5, 0.5, np.inf], labels=["low", "mid", "high"]).astype(str)
    df[TARGET_COL] = y.astype(int)
    return df


def simulate_regression_pool(
    n_samples: int,
    *,
    n_features: int = 8,
    noise: float = 10.0,
    seed: int = 2026,
) -> pd.DataFrame:
    X, y = make_regression(
        n_samples=n_samples,
        n_features=n_features,
        n_informative=max(2, n_features // 2),
        noise=noise,
        random_state=seed,
    )
    df = pd.DataFrame(X, columns=[f"x{i + 1}" for i in range(n_features)])
    df["group"] = pd.cut(df["x1"], bins=[-np.inf, -0.5, 0.5, np.inf], labels=["low", "mid", "high"]).astype(str)
    # A mild nonlinearity gives boosted trees room to be miscalibrated at the extremes.
    df[TARGET_COL] = y + 0.002 * np.sign(y) * y**2
    return df
