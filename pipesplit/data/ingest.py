import logging
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)


def load_sample_pool(path: Path, nrows=None) -> pd.DataFrame:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        df = pd.read_parquet(path)
    elif suffix == ".csv":
        df = pd.read_csv(path)
    elif suffix in (".xlsx", ".xls"):
        df = pd.read_excel(path)
    else:
        raise ValueError(f"Unsupported sample pool format: {path.suffix!r}")

    if nrows is not None:
        df = df.head(nrows).copy()
    # Positional indices are the row identity used by every partition.
    df = df.reset_index(drop=True)
    logger.info("Loaded sample pool %s with shape %s", path, df.shape)
    return df
