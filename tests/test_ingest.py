import pandas as pd
import pytest

from pipesplit.data.ingest import load_sample_pool


@pytest.fixture
def pool():
    return pd.DataFrame({"x1": [0.1, 0.2, 0.3, 0.4], "group": ["a", "b", "a", "b"], "y": [0, 1, 0, 1]})


@pytest.mark.parametrize("suffix", [".csv", ".xlsx", ".parquet"])
def test_load_sample_pool_formats(tmp_path, pool, suffix):
    path = tmp_path / f"pool{suffix}"
    if suffix == ".csv":
        pool.to_csv(path, index=False)
    elif suffix == ".xlsx":
        pool.to_excel(path, index=False)
    else:
        pool.set_index(pd.Index([10, 11, 12, 13])).to_parquet(path)

    df = load_sample_pool(path)
    assert df.index.tolist() == [0, 1, 2, 3]
    assert df["y"].tolist() == [0, 1, 0, 1]
    assert df["group"].tolist() == ["a", "b", "a", "b"]


def test_load_sample_pool_nrows(tmp_path, pool):
    path = tmp_path / "pool.csv"
    pool.to_csv(path, index=False)
    assert len(load_sample_pool(path, nrows=2)) == 2


def test_load_sample_pool_rejects_unknown_suffix(tmp_path):
    path = tmp_path / "pool.json"
    path.write_text("{}")
    with pytest.raises(ValueError, match="Unsupported"):
        load_sample_pool(path)
