import numpy as np
import pytest

from pipesplit.postprocessing.calibration import (
    IsotonicCalibrator,
    LinearCalibrator,
    PlattCalibrator,
    make_calibrator,
)
from pipesplit.postprocessing.cutoffs import FixedCutoff, OptimizedCutoff, make_cutoff
from sklearn.metrics import brier_score_loss


@pytest.fixture
def miscalibrated():
    rng = np.random.default_rng(2026)
    p_true = rng.uniform(0.02, 0.98, size=5000)
    y = rng.binomial(1, p_true)
    # Overconfident scores: logit stretched by a factor of three.
    logit = np.log(p_true / (1 - p_true))
    p_bad = 1.0 / (1.0 + np.exp(-3.0 * logit))
    return p_bad, y


@pytest.mark.parametrize("calibrator", [PlattCalibrator(), IsotonicCalibrator()])
def test_calibrators_reduce_brier_on_overconfident_scores(miscalibrated, calibrator):
    p_bad, y = miscalibrated
    fit_half, eval_half = slice(0, 2500), slice(2500, None)
    calibrator.fit(p_bad[fit_half], y[fit_half])
    p_cal = calibrator.transform(p_bad[eval_half])

    assert np.all((p_cal > 0) & (p_cal < 1))
    assert brier_score_loss(y[eval_half], p_cal) < brier_score_loss(y[eval_half], p_bad[eval_half])


def test_isotonic_is_monotone(miscalibrated):
    p_bad, y = miscalibrated
    cal = IsotonicCalibrator().fit(p_bad, y)
    grid = np.linspace(0.0, 1.0, 201)
    assert np.all(np.diff(cal.transform(grid)) >= 0)


def test_linear_calibrator_recovers_line():
    rng = np.random.default_rng(7)
    pred = rng.normal(50, 10, size=2000)
    observed = 2.0 + 0.5 * pred + rng.normal(0, 0.5, size=2000)
    cal = LinearCalibrator().fit(pred, observed)
    assert cal.slope_ == pytest.approx(0.5, abs=0.02)
    assert cal.intercept_ == pytest.approx(2.0, abs=1.0)
    assert np.allclose(cal.transform([10.0]), cal.intercept_ + cal.slope_ * 10.0)


def test_single_class_falls_back_to_identity():
    p = np.array([0.2, 0.4, 0.9])
    cal = PlattCalibrator().fit(p, np.zeros(3))
    assert np.allclose(cal.transform(p), p)


def test_transform_before_fit_raises():
    with pytest.raises(RuntimeError):
        IsotonicCalibrator().transform([0.5])
    with pytest.raises(RuntimeError):
        OptimizedCutoff().transform([0.5])


def test_fit_shape_mismatch():
    with pytest.raises(ValueError):
        PlattCalibrator().fit([0.1, 0.2], [0])


def test_optimized_cutoff_finds_separating_threshold():
    rng = np.random.default_rng(11)
    p = rng.uniform(0, 1, size=4000)
    p = p[(p < 0.28) | (p > 0.32)]
    y = (p > 0.3).astype(int)

    cut = OptimizedCutoff(metric="j_index").fit(p, y)
    assert 0.28 < cut.threshold <= 0.32 + 1e-9
    assert cut.score_ == pytest.approx(1.0)
    assert np.array_equal(cut.transform(p), y)

    f1_cut = OptimizedCutoff(metric="f1").fit(p, y)
    assert 0.28 < f1_cut.threshold <= 0.32 + 1e-9


def test_fixed_cutoff_needs_no_estimation():
    cut = FixedCutoff(0.4)
    assert not cut.requires_estimation
    assert cut.fit().transform([0.39, 0.4, 0.8]).tolist() == [0, 1, 1]
    with pytest.raises(ValueError):
        FixedCutoff(1.5)


def test_factories():
    assert make_calibrator("none") is None
    assert isinstance(make_calibrator("platt"), PlattCalibrator)
    assert isinstance(make_calibrator("linear"), LinearCalibrator)
    assert make_cutoff("none") is None
    assert isinstance(make_cutoff("fixed"), FixedCutoff)
    assert make_cutoff("f1").metric == "f1"
    with pytest.raises(ValueError):
        make_calibrator("beta")
    with pytest.raises(ValueError):
        make_cutoff("youden")
