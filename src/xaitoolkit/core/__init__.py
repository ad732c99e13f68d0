"""
xaitoolkit.core
---------------
解释结果容器, 解释器基类和模型加载
"""

from .explainer import BaseExplainer, ExplanationResult, display_explanation_result, format_explanation_result
from .model_loader import ModelLoader

__all__ = [
    'BaseExplainer',
    'ExplanationResult',
    'ModelLoader',
    'display_explanation_result',
    'format_explanation_result'
]
