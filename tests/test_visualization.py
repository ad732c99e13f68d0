"""Tests for the static plot generator."""

import matplotlib.pyplot as plt
import pytest

from xaitoolkit.core import ExplanationResult
from xaitoolkit.explainers.tabular.pdp_explainer import PartialDependenceExplainer
from xaitoolkit.explainers.tabular.shap_explainer import SHAPExplainer
from xaitoolkit.utils.validation import ValidationError
from xaitoolkit.visualization import PlotGenerator


@pytest.fixture
def plotter():
    yield PlotGenerator()
    plt.close("all")


@pytest.fixture
def cf_result():
    return ExplanationResult(
        raw_result=None,
        counterfactuals=[
            {"features": {"a": 1.0, "b": 2.0}, "prediction": 1,
             "changes": {"a": {"original": 0.0, "counterfactual": 1.0, "change": 1.0}}},
            {"features": {"a": 0.0, "b": 0.5}, "prediction": 1,
             "changes": {"b": {"original": 2.0, "counterfactual": 0.5, "change": -1.5}}},
        ],
        metadata={"method": "counterfactual"}
    )


class TestPlotGenerator:
    """Tests for PlotGenerator."""

    def test_feature_importance(self, plotter, sample_importance) -> None:
        """Test the bar chart with a top_n cut."""
        fig = plotter.feature_importance(sample_importance, title="LIME", top_n=2)
        ax = fig.axes[0]
        assert isinstance(fig, plt.Figure)
        assert ax.get_title() == "LIME"
        assert [t.get_text() for t in ax.get_yticklabels()] == ["b", "a"]

    def test_empty_importance(self, plotter) -> None:
        """Test that an empty importance dict raises."""
        with pytest.raises(ValueError):
            plotter.feature_importance({})

    def test_partial_dependence(self, plotter, linear_regressor, diabetes) -> None:
        """Test one subplot per single-feature curve."""
        X, _ = diabetes
        explainer = PartialDependenceExplainer(linear_regressor, "regression", grid_resolution=5, kind="both")
        result = explainer.explain(X.iloc[:20], features=["bmi", "bp", ("bmi", "bp")])

        fig = plotter.plot(result)
        visible = [ax for ax in fig.axes if ax.get_visible()]
        assert [ax.get_xlabel() for ax in visible] == ["bmi", "bp"]

    def test_partial_dependence_needs_curves(self, plotter) -> None:
        """Test that a result without curves raises."""
        result = ExplanationResult(raw_result=None, visualization={"type": "pdp", "curves": []})
        with pytest.raises(ValueError):
            plotter.partial_dependence(result)

    def test_shap_summary(self, plotter, rf_regressor, diabetes) -> None:
        """Test the SHAP summary plot."""
        X, _ = diabetes
        summary = SHAPExplainer(rf_regressor, "regression").summarize(X.iloc[:30])
        assert PlotGenerator.infer_plot_type(summary) == "shap_summary"
        assert isinstance(plotter.plot(summary, max_display=5), plt.Figure)

    def test_shap_summary_requires_matrix(self, plotter, sample_importance) -> None:
        """Test that local results cannot be drawn as a summary."""
        result = ExplanationResult(raw_result=None, feature_importance=sample_importance, visualization={})
        with pytest.raises(ValueError):
            plotter.shap_summary(result)

    def test_counterfactuals(self, plotter, cf_result) -> None:
        """Test the counterfactual change heatmap."""
        assert PlotGenerator.infer_plot_type(cf_result) == "counterfactuals"
        fig = plotter.plot(cf_result)
        labels = [t.get_text() for t in fig.axes[0].get_xticklabels()]
        assert labels == ["a", "b"]

    def test_default_plot_type(self, plotter, sample_importance) -> None:
        """Test that plain results fall back to a bar chart titled by method."""
        result = ExplanationResult(raw_result=None, feature_importance=sample_importance,
                                   metadata={"method": "lime"})
        assert PlotGenerator.infer_plot_type(result) == "feature_importance"
        assert plotter.plot(result).axes[0].get_title() == "lime importance"

    def test_invalid_plot_type(self, plotter, sample_importance) -> None:
        """Test that unknown plot types raise a validation error."""
        result = ExplanationResult(raw_result=None, feature_importance=sample_importance)
        with pytest.raises(ValidationError):
            plotter.plot(result, plot_type="waterfall")

    def test_base64_and_html(self, plotter, sample_importance) -> None:
        """Test figure encoding for HTML embedding."""
        encoded = plotter.to_base64(plotter.feature_importance(sample_importance))
        assert encoded.startswith("data:image/png;base64,")

        html = plotter.to_html(plotter.feature_importance(sample_importance))
        assert html.startswith('<img src="data:image/png;base64,')
