import numpy as np
import pytest

from pipesplit.data.resamples import make_resamples
from pipesplit.data.splits import make_partition
from pipesplit.errors import LeakageError, PartitionError, TestSetReusedError
from pipesplit.pipeline import MODEL_ROLE, POSTPROCESSOR_ROLE, ModelPipeline
from pipesplit.postprocessing.calibration import LinearCalibrator, PlattCalibrator
from pipesplit.postprocessing.cutoffs import FixedCutoff, OptimizedCutoff


def test_fit_records_rows_by_role(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 3, seed=2026)
    pipe = ModelPipeline(factory, [PlattCalibrator(), OptimizedCutoff()]).fit(X, y, partition)

    assert np.array_equal(pipe.fitted_rows[MODEL_ROLE], partition["training"])
    assert np.array_equal(pipe.fitted_rows[POSTPROCESSOR_ROLE], partition["potato"])
    assert pipe.postprocessor_strategy_ == "potato"

    metrics = pipe.evaluate(X, y, partition["test"])
    assert metrics["n"] == partition["test"].size
    assert metrics["roc_auc"] > 0.6
    assert 0.0 < metrics["cutoff"] < 1.0
    assert "uncalibrated_brier" in metrics
    assert metrics["tp"] + metrics["fp"] + metrics["tn"] + metrics["fn"] == partition["test"].size


def test_postprocessor_rows_must_not_overlap_model_rows(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 3, seed=2026)
    pipe = ModelPipeline(factory, [PlattCalibrator()])
    pipe.fit_model(X, y, partition["training"])
    overlapping = np.concatenate([partition["potato"], partition["training"][:5]])
    with pytest.raises(LeakageError, match="5 rows"):
        pipe.fit_postprocessors(X, y, overlapping)


def test_postprocessors_need_a_fitted_model(clf_data):
    X, y, factory = clf_data
    with pytest.raises(RuntimeError):
        ModelPipeline(factory, [PlattCalibrator()]).fit_postprocessors(X, y, np.arange(10))


def test_evaluation_refuses_fitted_rows(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 3, seed=2026)
    pipe = ModelPipeline(factory, [PlattCalibrator()]).fit(X, y, partition)
    with pytest.raises(LeakageError):
        pipe.evaluate(X, y, partition["training"][:20])
    with pytest.raises(LeakageError):
        pipe.evaluate(X, y, partition["potato"])


def test_test_set_is_evaluated_once(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 2, seed=2026)
    pipe = ModelPipeline(factory).fit(X, y, partition)

    first = pipe.evaluate(X, y, partition["validation"], once=False)
    second = pipe.evaluate(X, y, partition["validation"], once=False)
    assert first["roc_auc"] == second["roc_auc"]

    pipe.evaluate(X, y, partition["test"])
    with pytest.raises(TestSetReusedError):
        pipe.evaluate(X, y, partition["test"][:10])


def test_estimation_without_potato_subset(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 1, seed=2026)
    with pytest.raises(PartitionError, match="potato"):
        ModelPipeline(factory, [PlattCalibrator()]).fit(X, y, partition)

    # A fixed cutoff has nothing to estimate and works under any case.
    pipe = ModelPipeline(factory, [FixedCutoff(0.3)]).fit(X, y, partition)
    assert pipe.evaluate(X, y, partition["test"])["cutoff"] == pytest.approx(0.3)


def test_out_of_fold_postprocessor_fit(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 5, seed=2026)
    resamples = make_resamples(y, partition["training"], n_folds=5, seed=2026)

    pipe = ModelPipeline(factory, [PlattCalibrator()])
    pipe.fit_model(X, y, partition["training"])
    pipe.fit_postprocessors_out_of_fold(X, y, resamples)

    assert pipe.postprocessor_strategy_ == "out_of_fold"
    assert np.array_equal(pipe.fitted_rows[POSTPROCESSOR_ROLE], partition["training"])
    metrics = pipe.evaluate(X, y, partition["test"])
    assert np.isfinite(metrics["brier"])


def test_postprocessor_order_and_task_checks(clf_data):
    _, _, factory = clf_data
    with pytest.raises(ValueError, match="last"):
        ModelPipeline(factory, [FixedCutoff(), PlattCalibrator()])
    with pytest.raises(ValueError):
        ModelPipeline(factory, [PlattCalibrator()], task="regression")
    with pytest.raises(ValueError):
        ModelPipeline(factory, [LinearCalibrator()], task="classification")
    with pytest.raises(ValueError):
        ModelPipeline(factory, task="survival")


def test_regression_pipeline_with_linear_calibration(reg_data):
    X, y, factory = reg_data
    partition = make_partition(y, 3, seed=2026, stratify=False)
    pipe = ModelPipeline(factory, [LinearCalibrator()], task="regression").fit(X, y, partition)

    stages = pipe.predict_stages(X, partition["test"])
    assert set(stages) == {"raw", "continuous"}
    metrics = pipe.evaluate(X, y, partition["test"])
    assert metrics["r2"] > 0.5
    assert {"rmse", "mae", "uncalibrated_rmse", "calibration_slope"} <= set(metrics)


@pytest.fixture
def evaluated_case3(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 3, seed=2026)
    pipe = ModelPipeline(factory, [PlattCalibrator()]).fit(X, y, partition)
    pipe.evaluate(X, y, partition["test"])
    return X, y, partition, pipe


def test_evaluated_test_rows_cannot_be_rescored(evaluated_case3):
    X, y, partition, pipe = evaluated_case3
    with pytest.raises(TestSetReusedError):
        pipe.evaluate(X, y, partition["test"], once=False)
    with pytest.raises(TestSetReusedError):
        pipe.evaluate(X, y, partition["test"][:5], once=False)


def test_evaluated_test_rows_cannot_be_fitted_on(evaluated_case3):
    X, y, partition, pipe = evaluated_case3
    with pytest.raises(TestSetReusedError):
        pipe.fit_postprocessors(X, y, partition["test"])
    with pytest.raises(LeakageError):
        pipe.fit_model(X, y, np.concatenate([partition["training"], partition["test"][:3]]))

    resamples = make_resamples(y, np.concatenate([partition["training"], partition["test"]]), n_folds=3, seed=2026)
    with pytest.raises(TestSetReusedError):
        pipe.fit_postprocessors_out_of_fold(X, y, resamples)


def test_refit_keeps_test_rows_reserved(evaluated_case3):
    X, y, partition, pipe = evaluated_case3
    pipe.fit_model(X, y, partition["training"])
    pipe.fit_postprocessors(X, y, partition["potato"])
    with pytest.raises(TestSetReusedError):
        pipe.evaluate(X, y, partition["test"])


def test_raw_predictions_are_positive_class_probabilities(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 1, seed=2026)
    pipe = ModelPipeline(factory).fit(X, y, partition)
    proba = pipe.estimator_.predict_proba(X.iloc[partition["test"]])
    positive = list(pipe.estimator_.classes_).index(1)
    assert np.allclose(pipe.predict_raw(X, partition["test"]), proba[:, positive])


def test_learned_zero_cutoff_is_reported(clf_data):
    X, y, factory = clf_data
    partition = make_partition(y, 3, seed=2026)
    pipe = ModelPipeline(factory, [OptimizedCutoff(grid=np.array([0.0]))]).fit(X, y, partition)
    metrics = pipe.evaluate(X, y, partition["test"])
    assert metrics["cutoff"] == 0.0
    assert metrics["sensitivity"] == 1.0
