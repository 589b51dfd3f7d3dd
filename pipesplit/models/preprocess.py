from typing import List

import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.impute import SimpleImputer
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder


def infer_categorical_columns(df: pd.DataFrame, feature_cols: List[str]) -> List[str]:
    return [c for c in feature_cols if not pd.api.types.is_numeric_dtype(df[c])]


def build_preprocessor(feature_cols: List[str], categorical_cols: List[str]) -> ColumnTransformer:
    # Treat listed categorical columns as categorical even if numeric-like.
    cat_cols = [c for c in categorical_cols if c in feature_cols]
    num_cols = [c for c in feature_cols if c not in cat_cols]

    categorical = Pipeline(
        steps=[
            ("imputer", SimpleImputer(strategy="most_frequent")),
            ("ohe", OneHotEncoder(handle_unknown="ignore", sparse_output=False, drop="if_binary")),
        ]
    )
    numeric = Pipeline(
        steps=[
            ("imputer", SimpleImputer(strategy="median")),
        ]
    )

    transformers = []
    if cat_cols:
        transformers.append(("cat", categorical, cat_cols))
    if num_cols:
        transformers.append(("num", numeric, num_cols))

    if not transformers:
        raise ValueError("No features selected: feature set is empty.")

    return ColumnTransformer(transformers=transformers, remainder="drop", sparse_threshold=0.0)
