import numpy as np
import pytest

from pipesplit.config import TARGET_COL
from pipesplit.data.resamples import fold_assignments, make_resamples
from pipesplit.data.splits import make_partition


@pytest.fixture
def training_rows(clf_pool):
    y = clf_pool[TARGET_COL].to_numpy()
    return y, make_partition(y, 5, seed=2026)["training"]


def test_assessment_sets_tile_training(training_rows):
    y, training = training_rows
    resamples = make_resamples(y, training, n_folds=5, seed=2026)

    assert [rs.fold for rs in resamples] == [1, 2, 3, 4, 5]
    fold_id = fold_assignments(resamples, training)
    assert sorted(np.unique(fold_id).tolist()) == [1, 2, 3, 4, 5]
    for rs in resamples:
        assert rs.potato is None
        assert np.intersect1d(rs.analysis, rs.assessment).size == 0
        assert np.array_equal(np.union1d(rs.analysis, rs.assessment), training)


def test_potato_portion_split_from_analysis(training_rows):
    y, training = training_rows
    resamples = make_resamples(y, training, n_folds=5, seed=2026, potato_size=0.2)

    for rs in resamples:
        assert rs.potato is not None
        assert np.intersect1d(rs.potato, rs.analysis).size == 0
        assert np.intersect1d(rs.potato, rs.assessment).size == 0
        assert np.isin(rs.potato, training).all()
        n_before = rs.analysis.size + rs.potato.size
        assert abs(rs.potato.size - 0.2 * n_before) <= 1
        # Both classes must reach the potato portion for calibration to be estimable.
        assert set(np.unique(y[rs.potato]).tolist()) == {0, 1}


def test_unstratified_resamples_on_continuous_target(reg_pool):
    y = reg_pool[TARGET_COL].to_numpy()
    training = make_partition(y, 5, seed=2026, stratify=False)["training"]
    resamples = make_resamples(y, training, n_folds=4, seed=2026, stratify=False)
    assert len(resamples) == 4
    assert fold_assignments(resamples, training).min() == 1


@pytest.mark.parametrize("kwargs", [{"n_folds": 1}, {"n_folds": 5, "potato_size": 1.0}])
def test_invalid_resample_arguments(training_rows, kwargs):
    y, training = training_rows
    with pytest.raises(ValueError):
        make_resamples(y, training, seed=2026, **kwargs)
