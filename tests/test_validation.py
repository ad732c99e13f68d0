"""Tests for the validation helpers."""

import numpy as np
import pytest

from xaitoolkit.utils.validation import (
    ValidationError,
    validate_array,
    validate_choice,
    validate_feature_names,
    validate_file_path,
    validate_importance,
    validate_numeric,
)


class TestValidators:
    """Tests for validate_* helpers."""

    def test_numeric_bounds(self) -> None:
        """Test inclusive bounds and non-numeric input."""
        assert validate_numeric(0.95, 0.0, 1.0) == 0.95
        assert validate_numeric(1.0, 0.0, 1.0) == 1.0
        with pytest.raises(ValidationError):
            validate_numeric(-0.1, 0.0)
        with pytest.raises(ValidationError):
            validate_numeric(True, 0.0, 1.0)

    def test_array_checks(self) -> None:
        """Test dimension, column count and NaN checks."""
        arr = np.zeros((3, 4))
        assert validate_array(arr, ndim=2, n_features=4) is arr
        with pytest.raises(ValidationError):
            validate_array(arr, n_features=5)
        with pytest.raises(ValidationError):
            validate_array(np.array([[np.nan, 1.0]]))
        validate_array(np.array([[np.nan, 1.0]]), allow_nan=True)
        with pytest.raises(ValidationError):
            validate_array([[1.0]])

    def test_feature_names(self) -> None:
        """Test count and duplicate checks on feature names."""
        assert validate_feature_names(["a", 1], 2) == ["a", "1"]
        with pytest.raises(ValidationError, match="重复"):
            validate_feature_names(["a", "a"], 2)
        with pytest.raises(ValidationError):
            validate_feature_names(["a"], 2)

    def test_importance(self, sample_importance) -> None:
        """Test that importances must be finite and non-empty."""
        assert validate_importance(sample_importance) is sample_importance
        with pytest.raises(ValidationError):
            validate_importance({"a": float("inf")})
        with pytest.raises(ValidationError):
            validate_importance([("a", 1.0)])

    def test_file_path(self, tmp_path) -> None:
        """Test existence and extension checks."""
        path = tmp_path / "model.pkl"
        path.write_bytes(b"")
        assert validate_file_path(path, must_exist=True, extensions=[".PKL"]) == str(path)
        with pytest.raises(ValidationError):
            validate_file_path(str(path), extensions=[".joblib"])
        with pytest.raises(ValidationError):
            validate_file_path(str(tmp_path / "none.pkl"), must_exist=True)

    def test_choice(self) -> None:
        """Test that errors name the allowed options."""
        with pytest.raises(ValidationError, match="regression"):
            validate_choice("clustering", ["classification", "regression"], "task_type")
