"""Pytest configuration and shared fixtures."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest
from sklearn.datasets import load_diabetes, load_iris
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.linear_model import LinearRegression, LogisticRegression

IRIS_FEATURES = ["sepal_length", "sepal_width", "petal_length", "petal_width"]


@pytest.fixture(scope="session")
def iris_binary():
    """Setosa (0) vs versicolor (1), features as a DataFrame."""
    X, y = load_iris(return_X_y=True)
    mask = y < 2
    return pd.DataFrame(X[mask], columns=IRIS_FEATURES), y[mask]


@pytest.fixture(scope="session")
def rf_classifier(iris_binary):
    """Random forest fitted on the binary iris data (numpy input)."""
    X, y = iris_binary
    return RandomForestClassifier(n_estimators=25, random_state=0).fit(X.values, y)


@pytest.fixture(scope="session")
def logistic_model(iris_binary):
    """Logistic regression fitted on the binary iris data (numpy input)."""
    X, y = iris_binary
    return LogisticRegression(C=0.1, max_iter=1000).fit(X.values, y)


@pytest.fixture(scope="session")
def diabetes():
    """First 200 rows of the diabetes regression data."""
    X, y = load_diabetes(return_X_y=True, as_frame=True)
    return X.iloc[:200].reset_index(drop=True), np.asarray(y[:200])


@pytest.fixture(scope="session")
def rf_regressor(diabetes):
    """Shallow random forest regressor on the diabetes data."""
    X, y = diabetes
    return RandomForestRegressor(n_estimators=25, max_depth=5, random_state=0).fit(X.values, y)


@pytest.fixture(scope="session")
def linear_regressor(diabetes):
    """Ordinary least squares on the diabetes data."""
    X, y = diabetes
    return LinearRegression().fit(X.values, y)


@pytest.fixture
def sample_importance():
    """Small feature importance dict with mixed signs."""
    return {"a": 0.5, "b": -0.9, "c": 0.1, "d": 0.0}
