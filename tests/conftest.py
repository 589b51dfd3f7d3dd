import pytest

from pipesplit.config import TARGET_COL
from pipesplit.data.simulate import simulate_classification_pool, simulate_regression_pool
from pipesplit.models.estimators import make_estimator_factory


@pytest.fixture(scope="session")
def clf_pool():
    return simulate_classification_pool(1000, n_features=6, event_rate=0.3, seed=2026)


@pytest.fixture(scope="session")
def reg_pool():
    return simulate_regression_pool(800, n_features=6, seed=2026)


def _split_xy(df):
    feature_cols = [c for c in df.columns if c != TARGET_COL]
    return df[feature_cols], df[TARGET_COL].to_numpy(), feature_cols


@pytest.fixture
def clf_data(clf_pool):
    X, y, feature_cols = _split_xy(clf_pool)
    factory = make_estimator_factory("linear", "classification", feature_cols, ["group"], seed=2026)
    return X, y.astype(int), factory


@pytest.fixture
def reg_data(reg_pool):
    X, y, feature_cols = _split_xy(reg_pool)
    factory = make_estimator_factory("linear", "regression", feature_cols, ["group"], seed=2026)
    return X, y.astype(float), factory
