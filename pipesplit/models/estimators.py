from typing import Callable, List

from sklearn.compose import ColumnTransformer
from sklearn.pipeline import Pipeline

from pipesplit.models.baseline import build_linear_regression, build_logistic_regression
from pipesplit.models.boosted import build_hist_gradient_boosting, build_hist_gradient_boosting_regressor
from pipesplit.models.preprocess import build_preprocessor

MODEL_CHOICES = ("linear", "hgb")
TASK_CHOICES = ("classification", "regression")


def build_estimator(model: str, task: str, preprocessor: ColumnTransformer, seed: int) -> Pipeline:
    if task not in TASK_CHOICES:
        raise ValueError(f"Unknown task: {task}")
    if model == "linear":
        clf = build_logistic_regression() if task == "classification" else build_linear_regression()
    elif model == "hgb":
        clf = (
            build_hist_gradient_boosting(seed=seed)
            if task == "classification"
            else build_hist_gradient_boosting_regressor(seed=seed)
        )
    else:
        raise ValueError(f"Unknown model: {model}")

    return Pipeline(steps=[("preprocessor", preprocessor), ("model", clf)])


def make_estimator_factory(
    model: str, task: str, feature_cols: List[str], categorical_cols: List[str], seed: int
) -> Callable[[], Pipeline]:
    """Return a zero-argument factory producing fresh, unfitted pipelines."""
    # Validate eagerly so a bad choice fails before any fitting starts.
    build_estimator(model, task, build_preprocessor(list(feature_cols), list(categorical_cols)), seed)

    def estimator_factory() -> Pipeline:
        pre = build_preprocessor(list(feature_cols), list(categorical_cols))
        return build_estimator(model, task, preprocessor=pre, seed=seed)

    return estimator_factory
