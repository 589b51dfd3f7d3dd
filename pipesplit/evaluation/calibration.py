import numpy as np
import pandas as pd
from sklearn.calibration import calibration_curve

from pipesplit.config import PROB_BINS


def calibration_curve_df(y_true, y_prob, n_bins: int = PROB_BINS) -> pd.DataFrame:
    frac_pos, mean_pred = calibration_curve(y_true, y_prob, n_bins=n_bins, strategy="quantile")
    return pd.DataFrame({"mean_predicted": mean_pred, "fraction_positive": frac_pos})


def regression_calibration_df(y_true, y_pred, n_bins: int = PROB_BINS) -> pd.DataFrame:
    """Binned observed-vs-predicted means for numeric outcomes (quantile bins)."""
    df = pd.DataFrame({"y_true": np.asarray(y_true, dtype=float), "y_pred": np.asarray(y_pred, dtype=float)})
    n_bins = max(1, min(int(n_bins), df["y_pred"].nunique()))
    df["bin"] = pd.qcut(df["y_pred"], q=n_bins, labels=False, duplicates="drop")
    out = (
        df.groupby("bin", sort=True)
        .agg(mean_predicted=("y_pred", "mean"), mean_observed=("y_true", "mean"), n=("y_true", "size"))
        .reset_index(drop=True)
    )
    return out
