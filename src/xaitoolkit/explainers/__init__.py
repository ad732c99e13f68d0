from .factory import EXPLAINER_REGISTRY, get_explainer, list_explainers, resolve_method

__all__ = [
    'EXPLAINER_REGISTRY',
    'get_explainer',
    'list_explainers',
    'resolve_method'
]
