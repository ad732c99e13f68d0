"""Tests for Integrated Gradients."""

import numpy as np
import pytest

from xaitoolkit.explainers.tabular.integrated_gradients import (
    INTEGRATION_METHODS,
    IntegratedGradientsExplainer,
    integration_points,
)


class TestIntegrationPoints:
    """Tests for the quadrature rules."""

    @pytest.mark.parametrize("method", INTEGRATION_METHODS)
    def test_weights_sum_to_one(self, method) -> None:
        """Test that every rule integrates a constant exactly."""
        alphas, weights = integration_points(20, method)
        assert len(alphas) == len(weights) == 20
        assert weights.sum() == pytest.approx(1.0)
        assert np.all((alphas >= 0) & (alphas <= 1))

    def test_gausslegendre_integrates_polynomial(self) -> None:
        """Test that Gauss-Legendre is exact for a cubic on [0, 1]."""
        alphas, weights = integration_points(4, "gausslegendre")
        assert (weights * alphas ** 3).sum() == pytest.approx(0.25)

    def test_invalid_arguments(self) -> None:
        """Test that bad steps or rule names raise."""
        with pytest.raises(ValueError):
            integration_points(1)
        with pytest.raises(ValueError):
            integration_points(10, "simpson")


class TestBlackBoxIntegratedGradients:
    """Tests for the finite-difference path used by non-PyTorch models."""

    def test_linear_model_attributions_exact(self, linear_regressor, diabetes) -> None:
        """Test that IG of a linear model is coef * (x - baseline)."""
        X, _ = diabetes
        explainer = IntegratedGradientsExplainer(linear_regressor, "regression", training_data=X)
        row = X.values[11]
        result = explainer.explain(row)

        expected = linear_regressor.coef_ * (row - X.values.mean(axis=0))
        np.testing.assert_allclose(list(result.feature_importance.values()), expected, rtol=1e-4, atol=1e-6)
        assert abs(result.metrics["convergence_delta"]) < 1e-4
        assert result.metadata["model_type"] == "blackbox"

    @pytest.mark.parametrize("method", ["gausslegendre", "riemann_trapezoid", "riemann_middle"])
    def test_completeness_logistic(self, logistic_model, iris_binary, method) -> None:
        """Test that attributions sum to f(x) - f(baseline) for a smooth classifier."""
        X, _ = iris_binary
        explainer = IntegratedGradientsExplainer(logistic_model, "classification",
                                                 training_data=X, method=method, steps=64)
        result = explainer.explain(X.iloc[[75]], target=1)

        assert abs(result.metrics["convergence_delta"]) < 1e-2
        assert result.metadata["target_class"] == 1

    def test_default_baseline_without_training_data(self, linear_regressor, diabetes) -> None:
        """Test that the zero baseline is used when no data is given."""
        X, _ = diabetes
        explainer = IntegratedGradientsExplainer(linear_regressor, "regression")
        result = explainer.explain(X.values[0])
        np.testing.assert_array_equal(result.visualization["baseline"], np.zeros(X.shape[1]))

    def test_median_baseline_needs_data(self, linear_regressor, diabetes) -> None:
        """Test that the median baseline requires training data."""
        X, _ = diabetes
        explainer = IntegratedGradientsExplainer(linear_regressor, "regression", baseline="median")
        with pytest.raises(ValueError):
            explainer.explain(X.values[0])

    def test_custom_baseline_shape_checked(self, linear_regressor, diabetes) -> None:
        """Test that an array baseline must match the input."""
        X, _ = diabetes
        explainer = IntegratedGradientsExplainer(linear_regressor, "regression", baseline=[0.0, 1.0])
        with pytest.raises(ValueError):
            explainer.explain(X.values[0])

    def test_absolute_importance(self, linear_regressor, diabetes) -> None:
        """Test that absolute=True only changes the importance signs."""
        X, _ = diabetes
        explainer = IntegratedGradientsExplainer(linear_regressor, "regression", training_data=X)
        result = explainer.explain(X.values[3], absolute=True)
        assert all(v >= 0 for v in result.feature_importance.values())

    def test_unknown_method_rejected(self, linear_regressor) -> None:
        """Test that an unknown integration rule fails at construction."""
        with pytest.raises(ValueError):
            IntegratedGradientsExplainer(linear_regressor, "regression", method="simpson")


class TestPyTorchIntegratedGradients:
    """Tests for the captum path."""

    @pytest.fixture
    def tiny_net(self):
        torch = pytest.importorskip("torch")
        pytest.importorskip("captum")

        class TinyNet(torch.nn.Module):
            def __init__(self):
                super().__init__()
                torch.manual_seed(0)
                self.linear = torch.nn.Linear(4, 2)

            def forward(self, x):
                return torch.softmax(self.linear(x), dim=-1)

            def predict_proba(self, X):
                with torch.no_grad():
                    return self(torch.tensor(np.asarray(X), dtype=torch.float32)).numpy().astype(float)

            def predict(self, X):
                return self.predict_proba(X).argmax(axis=1)

        return TinyNet()

    def test_captum_completeness(self, tiny_net, iris_binary) -> None:
        """Test that captum attributions satisfy completeness."""
        X, _ = iris_binary
        explainer = IntegratedGradientsExplainer(tiny_net, "classification", training_data=X)
        result = explainer.explain(X.values[20], target=1)

        assert result.metadata["model_type"] == "pytorch"
        assert abs(result.metrics["convergence_delta"]) < 1e-3

    def test_captum_matches_blackbox(self, tiny_net, iris_binary) -> None:
        """Test that autograd and finite differences agree."""
        X, _ = iris_binary
        row = X.values[20]
        captum_result = IntegratedGradientsExplainer(tiny_net, "classification", training_data=X).explain(row, target=1)
        blackbox_result = IntegratedGradientsExplainer(tiny_net, "classification", training_data=X,
                                                       model_type="blackbox", epsilon=1e-2).explain(row, target=1)

        np.testing.assert_allclose(
            list(captum_result.feature_importance.values()),
            list(blackbox_result.feature_importance.values()),
            atol=1e-3
        )

    def test_plain_sequential_accepted(self, iris_binary) -> None:
        """Test that a module without predict/predict_proba goes through captum."""
        torch = pytest.importorskip("torch")
        pytest.importorskip("captum")
        X, _ = iris_binary
        torch.manual_seed(0)
        net = torch.nn.Sequential(torch.nn.Linear(4, 2), torch.nn.Softmax(dim=-1))

        explainer = IntegratedGradientsExplainer(net, "classification", training_data=X)
        result = explainer.explain(X.values[20])

        with torch.no_grad():
            predicted = int(net(torch.tensor(X.values[[20]], dtype=torch.float32)).argmax())
        assert explainer.model_type == "pytorch"
        assert result.metadata["target_class"] == predicted
        assert abs(result.metrics["convergence_delta"]) < 1e-3

    def test_loaded_module_explained(self, iris_binary, tmp_path) -> None:
        """Test that a module saved and reloaded by ModelLoader can be explained."""
        torch = pytest.importorskip("torch")
        pytest.importorskip("captum")
        from xaitoolkit.core.model_loader import ModelLoader

        X, _ = iris_binary
        torch.manual_seed(0)
        path = str(tmp_path / "net.pt")
        ModelLoader.save(torch.nn.Sequential(torch.nn.Linear(4, 1)), path)
        net = ModelLoader.load(path)

        result = IntegratedGradientsExplainer(net, "regression", training_data=X).explain(X.values[3])
        assert set(result.feature_importance) == set(X.columns)
        assert abs(result.metrics["convergence_delta"]) < 1e-3
