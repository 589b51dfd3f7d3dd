from typing import Iterable

import numpy as np
import pandas as pd


def assert_required_columns(df, required: Iterable[str]) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def assert_binary_target(y: pd.Series) -> None:
    if y.isna().any():
        raise ValueError(f"Target column {y.name} contains missing values.")
    vals = set(y.unique().tolist())
    if not vals.issubset({0, 1}):
        raise ValueError(f"Target column {y.name} must be binary {{0,1}}; observed values: {sorted(vals)}")


def assert_continuous_target(y: pd.Series) -> None:
    if y.isna().any():
        raise ValueError(f"Target column {y.name} contains missing values.")
    if not pd.api.types.is_numeric_dtype(y):
        raise ValueError(f"Target column {y.name} must be numeric for regression; got dtype {y.dtype}.")


def is_binary_target(y) -> bool:
    vals = pd.unique(np.asarray(y).ravel())
    return len(vals) <= 2 and set(vals.tolist()).issubset({0, 1})
