"""Tests for the LIME tabular explainer."""

import pytest

from xaitoolkit.explainers.tabular.lime_explainer import LIMEExplainer


@pytest.fixture
def lime_classifier(rf_classifier, iris_binary):
    X, _ = iris_binary
    return LIMEExplainer(rf_classifier, "classification", training_data=X, num_samples=500)


class TestLIMEExplainer:
    """Tests for LIMEExplainer."""

    def test_requires_training_data(self, rf_classifier) -> None:
        """Test that LIME cannot be built without training data."""
        with pytest.raises(ValueError, match="训练数据"):
            LIMEExplainer(rf_classifier, "classification")

    def test_feature_names_from_training_frame(self, lime_classifier, iris_binary) -> None:
        """Test that feature names come from the training DataFrame."""
        X, _ = iris_binary
        assert lime_classifier.feature_names == list(X.columns)

    def test_explain_classification(self, lime_classifier, rf_classifier, iris_binary) -> None:
        """Test the structure of a classification explanation."""
        X, _ = iris_binary
        row = X.iloc[[60]]
        result = lime_classifier.explain(row)

        predicted = int(rf_classifier.predict(row.values)[0])
        assert result.metadata["method"] == "lime"
        assert result.metadata["target_class"] == predicted
        assert set(result.feature_importance) == set(X.columns)
        assert "local_fidelity_r2" in result.metrics
        assert result.visualization["as_list"]
        assert isinstance(result.visualization["intercept"], float)

    def test_petal_features_rank_high(self, lime_classifier, iris_binary) -> None:
        """Test that a separating petal feature is among the top two."""
        X, _ = iris_binary
        result = lime_classifier.explain(X.iloc[[10]])
        top_names = [name for name, _ in result.top_features(2)]
        assert any(name.startswith("petal") for name in top_names)

    def test_explicit_target_and_num_features(self, lime_classifier, iris_binary) -> None:
        """Test explaining a chosen class with fewer features."""
        X, _ = iris_binary
        result = lime_classifier.explain(X.iloc[[0]], target=1, num_features=2)
        assert result.metadata["target_class"] == 1
        assert len(result.feature_importance) == 2

    def test_explain_regression(self, rf_regressor, diabetes) -> None:
        """Test LIME in regression mode."""
        X, _ = diabetes
        explainer = LIMEExplainer(rf_regressor, "regression", training_data=X, num_samples=500)
        result = explainer.explain(X.iloc[[5]])

        assert result.metadata["target_class"] is None
        assert set(result.feature_importance) == set(X.columns)

    def test_pick_representative(self, lime_classifier, rf_classifier, iris_binary) -> None:
        """Test that SP-LIME returns distinct rows explained for their predicted class."""
        X, _ = iris_binary
        results = lime_classifier.pick_representative(X, num_exps=3, sample_size=20, num_samples=200)

        rows = [r.metadata["row"] for r in results]
        assert len(results) == 3
        assert len(set(rows)) == 3
        for result in results:
            row = result.metadata["row"]
            assert 0 <= row < len(X)
            assert result.metadata["submodular_pick"] is True
            assert result.metadata["target_class"] == int(rf_classifier.predict(X.values[[row]])[0])
            assert result.metadata["instance"] == X.values[row].tolist()
