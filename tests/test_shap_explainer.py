"""Tests for the SHAP explainer."""

import numpy as np
import pytest

from xaitoolkit.explainers.tabular.shap_explainer import SHAPExplainer


class TestSHAPExplainer:
    """Tests for SHAPExplainer."""

    def test_auto_selects_tree(self, rf_regressor) -> None:
        """Test that tree ensembles get TreeExplainer."""
        explainer = SHAPExplainer(rf_regressor, "regression")
        assert explainer.method == "tree"

    def test_auto_selects_linear(self, linear_regressor, diabetes) -> None:
        """Test that linear models get LinearExplainer."""
        X, _ = diabetes
        explainer = SHAPExplainer(linear_regressor, "regression", background_data=X)
        assert explainer.method == "linear"

    def test_kernel_requires_background(self, rf_regressor) -> None:
        """Test that KernelSHAP needs background data."""
        with pytest.raises(ValueError, match="背景数据"):
            SHAPExplainer(rf_regressor, "regression", method="kernel")

    def test_background_subsampled(self, rf_regressor, diabetes) -> None:
        """Test that background data is capped at background_size."""
        X, _ = diabetes
        explainer = SHAPExplainer(rf_regressor, "regression", background_data=X, background_size=20)
        assert explainer.background_data.shape == (20, X.shape[1])

    def test_tree_additivity_regression(self, rf_regressor, diabetes) -> None:
        """Test that base value plus SHAP values equals the prediction."""
        X, _ = diabetes
        explainer = SHAPExplainer(rf_regressor, "regression", feature_names=list(X.columns))
        row = X.values[3]
        result = explainer.explain(row)

        prediction = rf_regressor.predict(row.reshape(1, -1))[0]
        assert result.metrics["explained_output"] == pytest.approx(prediction, rel=1e-6)
        assert set(result.feature_importance) == set(X.columns)

    def test_linear_values_follow_coefficients(self, linear_regressor, diabetes) -> None:
        """Test that LinearSHAP differences between rows are coef * (x1 - x2)."""
        X, _ = diabetes
        explainer = SHAPExplainer(linear_regressor, "regression", background_data=X)
        first, second = X.values[7], X.values[8]
        phi_first = np.array(list(explainer.explain(first).feature_importance.values()))
        phi_second = np.array(list(explainer.explain(second).feature_importance.values()))

        np.testing.assert_allclose(phi_first - phi_second, linear_regressor.coef_ * (first - second), atol=1e-6)

    def test_linear_additivity(self, linear_regressor, diabetes) -> None:
        """Test that LinearSHAP explains the exact prediction."""
        X, _ = diabetes
        explainer = SHAPExplainer(linear_regressor, "regression", background_data=X)
        row = X.values[7]
        result = explainer.explain(row)
        prediction = linear_regressor.predict(row.reshape(1, -1))[0]
        assert result.metrics["explained_output"] == pytest.approx(prediction, rel=1e-6)

    def test_classifier_targets(self, rf_classifier, iris_binary) -> None:
        """Test that each class gets its own attribution."""
        X, _ = iris_binary
        explainer = SHAPExplainer(rf_classifier, "classification", background_data=X)
        row = X.iloc[[70]]

        positive = explainer.explain(row, target=1)
        negative = explainer.explain(row, target=0)

        proba = rf_classifier.predict_proba(row.values)[0]
        assert positive.metrics["explained_output"] == pytest.approx(proba[1], abs=1e-6)
        assert negative.metrics["explained_output"] == pytest.approx(proba[0], abs=1e-6)

    def test_kernel_classifier_uses_probabilities(self, logistic_model, iris_binary) -> None:
        """Test KernelSHAP on predict_proba sums to the class probability."""
        X, _ = iris_binary
        explainer = SHAPExplainer(logistic_model, "classification", background_data=X,
                                  method="kernel", background_size=20, nsamples=200)
        row = X.values[80]
        result = explainer.explain(row, target=1)

        proba = logistic_model.predict_proba(row.reshape(1, -1))[0, 1]
        assert result.metrics["explained_output"] == pytest.approx(proba, abs=1e-3)

    def test_batch_explain(self, rf_regressor, diabetes) -> None:
        """Test that batch explanation covers every row."""
        X, _ = diabetes
        explainer = SHAPExplainer(rf_regressor, "regression")
        results = explainer.batch_explain(X.iloc[:5])

        predictions = rf_regressor.predict(X.values[:5])
        assert len(results) == 5
        for result, prediction in zip(results, predictions):
            assert result.metrics["explained_output"] == pytest.approx(prediction, rel=1e-6)

    def test_summarize_global_importance(self, rf_regressor, diabetes) -> None:
        """Test the global mean |SHAP| summary."""
        X, _ = diabetes
        explainer = SHAPExplainer(rf_regressor, "regression")
        summary = explainer.summarize(X.iloc[:40])

        assert summary.metadata["scope"] == "global"
        assert summary.visualization["shap_values"].shape == (40, X.shape[1])
        assert all(v >= 0 for v in summary.feature_importance.values())
        # bmi and s5 carry most of the signal in the diabetes data
        top = [name for name, _ in summary.top_features(3)]
        assert "bmi" in top or "s5" in top

    def test_binary_linear_target_zero(self, logistic_model, iris_binary) -> None:
        """Test that class 0 of a single-output binary model gets the negated log-odds."""
        X, _ = iris_binary
        explainer = SHAPExplainer(logistic_model, "classification", background_data=X)
        row = X.values[55]

        positive = explainer.explain(row, target=1)
        negative = explainer.explain(row, target=0)

        margin = logistic_model.decision_function(row.reshape(1, -1))[0]
        assert explainer.method == "linear"
        assert positive.metadata["output_scale"] == "log-odds"
        assert positive.metrics["explained_output"] == pytest.approx(margin, abs=1e-6)
        assert negative.metrics["explained_output"] == pytest.approx(-margin, abs=1e-6)
        assert negative.metrics["base_value"] == pytest.approx(-positive.metrics["base_value"])
        for name, value in positive.feature_importance.items():
            assert negative.feature_importance[name] == pytest.approx(-value)
        assert negative.metadata["target_class"] == 0

    def test_binary_single_output_rejects_other_classes(self, logistic_model, iris_binary) -> None:
        """Test that a single-output binary model only has classes 0 and 1."""
        X, _ = iris_binary
        explainer = SHAPExplainer(logistic_model, "classification", background_data=X)
        with pytest.raises(ValueError, match="0或1"):
            explainer.explain(X.values[0], target=2)

    def test_forest_reports_probability_scale(self, rf_classifier, iris_binary) -> None:
        """Test that a random forest is explained on the probability scale."""
        X, _ = iris_binary
        explainer = SHAPExplainer(rf_classifier, "classification", background_data=X)
        assert explainer.output_scale == "probability"
