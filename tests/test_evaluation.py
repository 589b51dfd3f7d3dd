import logging

import numpy as np

from pipesplit.config import TARGET_COL
from pipesplit.data.splits import make_partition
from pipesplit.evaluation.bootstrap import (
    _stratified_bootstrap_indices,
    bootstrap_metric_draws,
    summarize_bootstrap_ci,
)
from pipesplit.evaluation.calibration import regression_calibration_df
from pipesplit.evaluation.metrics import BINARY_METRICS, REGRESSION_METRICS
from pipesplit.evaluation.subset_adequacy import (
    evaluate_subset_adequacy,
    partition_adequacy,
    postprocessor_adequacy,
)
from pipesplit.pipeline import ModelPipeline
from pipesplit.postprocessing.calibration import PlattCalibrator
from pipesplit.postprocessing.cutoffs import FixedCutoff

ADEQUACY_LOGGER = "pipesplit.evaluation.subset_adequacy"


def test_stratified_bootstrap_keeps_event_count():
    y = np.array([1] * 40 + [0] * 60)
    rng = np.random.default_rng(2026)
    for _ in range(20):
        idx = _stratified_bootstrap_indices(y, rng)
        assert idx.size == y.size
        assert int(y[idx].sum()) == 40


def test_classification_bootstrap_draws_and_ci():
    rng = np.random.default_rng(0)
    y = np.array([1] * 40 + [0] * 60)
    p = np.clip(0.3 + 0.4 * y + rng.normal(0, 0.15, y.size), 0.01, 0.99)

    draws = bootstrap_metric_draws(y_true=y, y_pred=p, n_boot=50, seed=2026)
    assert len(draws) == 50
    assert draws["iter"].tolist() == list(range(50))
    assert set(BINARY_METRICS) <= set(draws.columns)

    ci = summarize_bootstrap_ci(draws, metrics=BINARY_METRICS)
    for metric, (lo, hi) in ci.items():
        assert lo <= hi, metric
    assert ci["roc_auc"][0] > 0.5


def test_regression_bootstrap_draws_and_ci():
    rng = np.random.default_rng(1)
    y = rng.normal(size=200)
    p = y + rng.normal(0, 0.3, y.size)

    draws = bootstrap_metric_draws(y_true=y, y_pred=p, n_boot=30, seed=2026, task="regression")
    assert len(draws) == 30
    assert set(REGRESSION_METRICS) <= set(draws.columns)
    lo, hi = summarize_bootstrap_ci(draws)["rmse"]
    assert 0.0 < lo <= hi


def test_bootstrap_with_no_draws():
    draws = bootstrap_metric_draws(y_true=[0, 1], y_pred=[0.2, 0.8], n_boot=0, seed=0)
    assert draws.empty
    lo, hi = summarize_bootstrap_ci(draws)["roc_auc"]
    assert np.isnan(lo) and np.isnan(hi)


def test_subset_adequacy_thresholds():
    ok = evaluate_subset_adequacy(np.array([1] * 30 + [0] * 70))
    assert ok.adequate and ok.reason == ""
    assert (ok.n, ok.n_pos, ok.n_neg) == (100, 30, 70)

    few_pos = evaluate_subset_adequacy(np.array([1] * 5 + [0] * 95))
    assert not few_pos.adequate
    assert few_pos.reason == "pos<10"

    tiny = evaluate_subset_adequacy(np.array([1] * 3 + [0] * 3), min_group_eventrate=0.6)
    assert tiny.reason.split(";") == ["n<50", "pos<10", "neg<10", "event_rate<0.6000"]


def test_subset_adequacy_continuous_target():
    short = evaluate_subset_adequacy(np.linspace(0, 1, 30), binary=False)
    assert not short.adequate
    assert short.reason == "n<50"
    assert np.isnan(short.event_rate)
    assert evaluate_subset_adequacy(np.linspace(0, 1, 60), binary=False).adequate


def test_partition_adequacy_warns_on_thin_subsets(clf_pool, caplog):
    y = clf_pool[TARGET_COL].to_numpy()[:200]
    partition = make_partition(y, 3, seed=2026)
    with caplog.at_level(logging.WARNING, logger=ADEQUACY_LOGGER):
        table = partition_adequacy(partition, y)

    assert table["subset"].tolist() == partition.names
    thin = table.set_index("subset").loc["potato"]
    assert not thin["adequate"]
    assert "n<50" in thin["reason"]
    assert any("'potato'" in rec.getMessage() for rec in caplog.records)


def test_postprocessor_adequacy(clf_data, caplog):
    X, y, factory = clf_data
    partition = make_partition(y, 3, seed=2026)

    plain = ModelPipeline(factory, [FixedCutoff()]).fit(X, y, partition)
    assert postprocessor_adequacy(plain, y) is None

    calibrated = ModelPipeline(factory, [PlattCalibrator()]).fit(X, y, partition)
    assert postprocessor_adequacy(calibrated, y).adequate
    with caplog.at_level(logging.WARNING, logger=ADEQUACY_LOGGER):
        thin = postprocessor_adequacy(calibrated, y, min_group_n=10_000)
    assert not thin.adequate
    assert thin.n == partition["potato"].size
    assert any("thin set" in rec.getMessage() for rec in caplog.records)


def test_regression_calibration_bins():
    y_pred = np.linspace(0.0, 1.0, 100)
    table = regression_calibration_df(2.0 * y_pred, y_pred, n_bins=5)
    assert list(table.columns) == ["mean_predicted", "mean_observed", "n"]
    assert len(table) == 5
    assert table["n"].sum() == 100
    assert table["mean_predicted"].is_monotonic_increasing
    assert np.allclose(table["mean_observed"], 2.0 * table["mean_predicted"])
