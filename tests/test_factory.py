"""Tests for the explainer factory."""

import pytest

from xaitoolkit.explainers import get_explainer
from xaitoolkit.explainers.factory import EXPLAINER_REGISTRY, list_explainers, resolve_method
from xaitoolkit.explainers.tabular.counterfactual_explainer import CounterfactualExplainer
from xaitoolkit.explainers.tabular.lime_explainer import LIMEExplainer
from xaitoolkit.explainers.tabular.permutation_importance import PermutationImportanceExplainer
from xaitoolkit.xai_io import ConfigParser


class TestResolveMethod:
    """Tests for method name normalization."""

    @pytest.mark.parametrize("alias,expected", [
        ("eli5", "permutation_importance"),
        ("dice", "counterfactual"),
        ("IG", "integrated_gradients"),
        ("partial_dependence", "pdp"),
        ("anchors", "anchor"),
        ("SHAP", "shap"),
    ])
    def test_aliases(self, alias, expected) -> None:
        """Test that aliases and casing resolve to registry names."""
        assert resolve_method(alias) == expected

    def test_unknown_method(self) -> None:
        """Test that unknown methods raise with the available list."""
        with pytest.raises(ValueError, match="lime"):
            resolve_method("gradcam")


class TestListExplainers:
    """Tests for list_explainers."""

    def test_all_methods_listed(self) -> None:
        """Test that every registered method is described with its scope."""
        entries = list_explainers()
        assert [e["method"] for e in entries] == list(EXPLAINER_REGISTRY)
        assert len(entries) == 7

        scopes = {e["method"]: e["scope"] for e in entries}
        assert scopes["pdp"] == "global"
        assert scopes["permutation_importance"] == "global"
        assert scopes["lime"] == "local"
        assert all(e["description"] for e in entries)


class TestGetExplainer:
    """Tests for get_explainer."""

    def test_alias_builds_class(self, linear_regressor) -> None:
        """Test that an alias returns the registered class."""
        explainer = get_explainer(linear_regressor, "eli5", "regression")
        assert isinstance(explainer, PermutationImportanceExplainer)

    def test_config_section_applied(self, rf_classifier, iris_binary) -> None:
        """Test that explainers.<method> from the config becomes the defaults."""
        X, _ = iris_binary
        config = {"explainers": {"lime": {"num_samples": 123, "random_state": 7}}}
        explainer = get_explainer(rf_classifier, "lime", "classification",
                                  config=config, training_data=X)

        assert isinstance(explainer, LIMEExplainer)
        assert explainer.num_samples == 123
        assert explainer.random_state == 7

    def test_kwargs_override_config(self, rf_classifier, iris_binary) -> None:
        """Test that explicit keyword arguments win over the config."""
        X, _ = iris_binary
        config = {"explainers": {"lime": {"num_samples": 123}}}
        explainer = get_explainer(rf_classifier, "lime", "classification",
                                  config=config, training_data=X, num_samples=50)
        assert explainer.num_samples == 50

    def test_method_key_in_config(self, rf_classifier, iris_binary) -> None:
        """Test that a 'method' option in the config reaches the explainer."""
        X, y = iris_binary
        config = ConfigParser().to_dict()
        explainer = get_explainer(rf_classifier, "dice", "classification", config=config,
                                  training_data=X, training_labels=y)

        assert isinstance(explainer, CounterfactualExplainer)
        assert explainer.method == "random"
        assert explainer.total_CFs == 5

    def test_feature_names_forwarded(self, linear_regressor) -> None:
        """Test that feature names are passed to the explainer."""
        names = [f"x{i}" for i in range(10)]
        explainer = get_explainer(linear_regressor, "pdp", "regression", feature_names=names)
        assert explainer.feature_names == names
