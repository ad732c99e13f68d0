"""
表格数据解释器
"""

from .anchor_explainer import AnchorExplainer
from .counterfactual_explainer import CounterfactualExplainer
from .integrated_gradients import IntegratedGradientsExplainer
from .lime_explainer import LIMEExplainer
from .pdp_explainer import PartialDependenceExplainer
from .permutation_importance import PermutationImportanceExplainer
from .shap_explainer import SHAPExplainer

__all__ = [
    'AnchorExplainer',
    'CounterfactualExplainer',
    'IntegratedGradientsExplainer',
    'LIMEExplainer',
    'PartialDependenceExplainer',
    'PermutationImportanceExplainer',
    'SHAPExplainer'
]
