"""
XAI Toolkit
-----------
表格模型的可解释AI工具箱: LIME, SHAP, Integrated Gradients, PDP,
置换重要性, Anchor 以及反事实解释
"""

from .core import BaseExplainer, ExplanationResult, ModelLoader
from .explainers.factory import get_explainer, list_explainers

__all__ = [
    'BaseExplainer',
    'ExplanationResult',
    'ModelLoader',
    'get_explainer',
    'list_explainers'
]

__version__ = "0.8.0"
