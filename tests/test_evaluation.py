"""Tests for fidelity and stability evaluation."""

import numpy as np
import pytest

from xaitoolkit.core.explainer import ExplanationResult
from xaitoolkit.evaluation import FidelityEvaluator, StabilityEvaluator
from xaitoolkit.explainers.tabular.integrated_gradients import IntegratedGradientsExplainer


def _true_attributions(model, row, baseline, names):
    return dict(zip(names, model.coef_ * (row - baseline)))


class TestFidelityEvaluator:
    """Tests for FidelityEvaluator."""

    def test_fidelity_plus_linear_exact(self, linear_regressor, diabetes) -> None:
        """Test that removing the top features changes a linear output by their attribution sum."""
        X, _ = diabetes
        names = list(X.columns)
        baseline = X.values.mean(axis=0)
        row = X.values[[7]]
        exp = _true_attributions(linear_regressor, row[0], baseline, names)

        top = sorted(exp.values(), key=abs, reverse=True)[:2]
        score = FidelityEvaluator.fidelity_plus(linear_regressor, row, [exp], names,
                                                task_type="regression", baseline=baseline, top_k=2)
        assert score == pytest.approx(abs(sum(top)))

    def test_fidelity_minus_linear_exact(self, linear_regressor, diabetes) -> None:
        """Test that removing the least important features changes the output by their sum."""
        X, _ = diabetes
        names = list(X.columns)
        baseline = X.values.mean(axis=0)
        row = X.values[[7]]
        exp = _true_attributions(linear_regressor, row[0], baseline, names)

        bottom = sorted(exp.values(), key=abs)[:2]
        score = FidelityEvaluator.fidelity_minus(linear_regressor, row, [exp], names,
                                                 task_type="regression", baseline=baseline, top_k=2)
        assert score == pytest.approx(abs(sum(bottom)), abs=1e-8)

    def test_evaluate_all_gap(self, linear_regressor, diabetes) -> None:
        """Test that faithful attributions give a positive fidelity gap."""
        X, _ = diabetes
        names = list(X.columns)
        baseline = X.values.mean(axis=0)
        rows = X.values[:10]
        explanations = [_true_attributions(linear_regressor, r, baseline, names) for r in rows]

        results = FidelityEvaluator.evaluate_all(linear_regressor, rows, explanations, names,
                                                 task_type="regression", reference_data=X.values)
        assert set(results) == {"fidelity_plus", "fidelity_minus", "fidelity_gap"}
        assert results["fidelity_gap"] == pytest.approx(results["fidelity_plus"] - results["fidelity_minus"])
        assert results["fidelity_gap"] > 0

    def test_classification_uses_predicted_class(self, logistic_model, iris_binary) -> None:
        """Test classification fidelity against the predicted class probability."""
        X, _ = iris_binary
        names = list(X.columns)
        rows = X.values[[0, 60]]
        explanations = [{"petal_length": 1.0, "petal_width": 0.5}] * 2

        results = FidelityEvaluator.evaluate_all(logistic_model, rows, explanations, names,
                                                 reference_data=X.values, top_k=2)
        assert -1.0 <= results["fidelity_plus"] <= 1.0
        assert 0.0 <= results["fidelity_minus"] <= 1.0

    def test_explanation_count_checked(self, linear_regressor, diabetes) -> None:
        """Test that explanations must match the rows."""
        X, _ = diabetes
        with pytest.raises(ValueError):
            FidelityEvaluator.fidelity_plus(linear_regressor, X.values[:3], [{}], list(X.columns),
                                            task_type="regression")


class TestStabilityEvaluator:
    """Tests for StabilityEvaluator."""

    def test_identical_explanations(self, sample_importance) -> None:
        """Test that an explanation is fully similar to itself."""
        assert StabilityEvaluator.explanation_similarity(sample_importance, dict(sample_importance)) == 1.0

    def test_similarity_orders_pairs(self, sample_importance) -> None:
        """Test that a small change scores higher than a sign flip."""
        nudged = {k: v * 1.05 + 0.01 for k, v in sample_importance.items()}
        flipped = {k: -v for k, v in sample_importance.items()}

        close = StabilityEvaluator.explanation_similarity(sample_importance, nudged)
        far = StabilityEvaluator.explanation_similarity(sample_importance, flipped)
        assert close > far
        assert close <= 1.0

    def test_rank_consistency(self) -> None:
        """Test the Jaccard overlap of top-k features."""
        a = {"a": 3.0, "b": 2.0, "c": 0.1, "d": 0.0}
        b = {"a": 0.0, "b": 0.1, "c": 2.0, "d": -3.0}

        assert StabilityEvaluator.rank_consistency([a, dict(a)], top_k=2) == 1.0
        assert StabilityEvaluator.rank_consistency([a, b], top_k=2) == 0.0
        assert StabilityEvaluator.rank_consistency([a]) == 1.0

    def test_local_stability_integrated_gradients(self, linear_regressor, diabetes) -> None:
        """Test that IG on a linear model is stable under small noise."""
        X, _ = diabetes
        explainer = IntegratedGradientsExplainer(linear_regressor, "regression", training_data=X, steps=8)
        rows = X.values[:3]
        explanations = [explainer.explain(r).feature_importance for r in rows]

        results = StabilityEvaluator.evaluate_all(explainer, rows, explanations,
                                                  num_perturbations=3, noise_scale=0.01,
                                                  reference_data=X.values)
        assert 0.8 < results["local_stability"] <= 1.0
        assert 0.0 <= results["rank_consistency"] <= 1.0

    def test_perturbation_is_seeded(self) -> None:
        """Test that the same seed gives the same perturbations."""
        sample = np.ones(3)
        scale = np.ones(3)
        first = StabilityEvaluator._perturb_sample(sample, 2, 0.1, scale, np.random.RandomState(1))
        second = StabilityEvaluator._perturb_sample(sample, 2, 0.1, scale, np.random.RandomState(1))
        np.testing.assert_array_equal(first[0], second[0])
        assert not np.allclose(first[0], sample)

    def test_local_stability_keeps_target(self, sample_importance) -> None:
        """Test that perturbed samples are explained for the original target class."""

        class RecordingExplainer:
            def __init__(self):
                self.targets = []

            def explain(self, sample, target=None):
                self.targets.append(target)
                return ExplanationResult(raw_result=None, feature_importance=dict(sample_importance))

        explainer = RecordingExplainer()
        data = np.zeros((2, len(sample_importance)))
        score = StabilityEvaluator.local_stability(explainer, data, [sample_importance] * 2,
                                                   num_perturbations=3, targets=[1, 0])

        assert explainer.targets == [1, 1, 1, 0, 0, 0]
        assert score == pytest.approx(1.0)

    def test_local_stability_targets_length_checked(self, sample_importance) -> None:
        """Test that one target is needed per sample."""
        with pytest.raises(ValueError, match="targets"):
            StabilityEvaluator.local_stability(object(), np.zeros((2, 4)), [sample_importance] * 2,
                                               targets=[1])
