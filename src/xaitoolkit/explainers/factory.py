from typing import Any, Dict, List, Optional

from xaitoolkit.explainers.tabular.anchor_explainer import AnchorExplainer
from xaitoolkit.explainers.tabular.counterfactual_explainer import CounterfactualExplainer
from xaitoolkit.explainers.tabular.integrated_gradients import IntegratedGradientsExplainer
from xaitoolkit.explainers.tabular.lime_explainer import LIMEExplainer
from xaitoolkit.explainers.tabular.pdp_explainer import PartialDependenceExplainer
from xaitoolkit.explainers.tabular.permutation_importance import PermutationImportanceExplainer
from xaitoolkit.explainers.tabular.shap_explainer import SHAPExplainer


EXPLAINER_REGISTRY = {
    "lime": LIMEExplainer,
    "shap": SHAPExplainer,
    "integrated_gradients": IntegratedGradientsExplainer,
    "pdp": PartialDependenceExplainer,
    "permutation_importance": PermutationImportanceExplainer,
    "anchor": AnchorExplainer,
    "counterfactual": CounterfactualExplainer
}

METHOD_ALIASES = {
    "lime_tabular": "lime",
    "shap_tabular": "shap",
    "ig": "integrated_gradients",
    "partial_dependence": "pdp",
    "eli5": "permutation_importance",
    "anchors": "anchor",
    "dice": "counterfactual",
    "dice_tabular": "counterfactual"
}

METHOD_DESCRIPTIONS = {
    "lime": "Local surrogate linear model fitted on perturbed samples",
    "shap": "Shapley value feature attributions (tree / linear / kernel)",
    "integrated_gradients": "Path-integrated gradients from a baseline to the input",
    "pdp": "Partial dependence and ICE curves (global)",
    "permutation_importance": "ELI5-style permutation importance and model weights (global)",
    "anchor": "High-precision IF-THEN rules that anchor a prediction",
    "counterfactual": "Minimal input changes that flip the prediction (DiCE)"
}


def resolve_method(method: str) -> str:
    """规范化方法名 (支持别名)"""
    method = method.lower()
    method = METHOD_ALIASES.get(method, method)
    if method not in EXPLAINER_REGISTRY:
        raise ValueError(f"不支持的解释方法: {method}，可用方法: {list(EXPLAINER_REGISTRY.keys())}")
    return method


def list_explainers() -> List[Dict[str, str]]:
    """列出所有已注册的解释方法"""
    return [
        {
            'method': name,
            'class': cls.__name__,
            'scope': cls.scope,
            'description': METHOD_DESCRIPTIONS.get(name, '')
        }
        for name, cls in EXPLAINER_REGISTRY.items()
    ]


def get_explainer(
    model,
    method: str,
    task_type: str,
    feature_names=None,
    config: Optional[Dict[str, Any]] = None,
    **kwargs
):
    """
    通用解释器工厂函数
    :param model: 已加载的模型
    :param method: 解释方法名 (如 'lime', 'shap', 'anchor')
    :param task_type: 任务类型 ('classification', 'regression')
    :param feature_names: 特征名，可选
    :param config: 配置字典，使用其中 explainers.<method> 节作为默认参数
    :param kwargs: 其他参数，自动传递给解释器 (优先于配置)
    :return: 解释器实例
    """
    method = resolve_method(method)

    explainer_cls = EXPLAINER_REGISTRY[method]
    explainer_args = {}

    # 配置文件中的默认参数
    if config:
        explainer_args.update((config.get('explainers') or {}).get(method) or {})

    # 通用参数
    explainer_args['model'] = model
    explainer_args['task_type'] = task_type
    if feature_names is not None:
        explainer_args['feature_names'] = feature_names

    # 其他参数自动透传
    explainer_args.update(kwargs)

    explainer = explainer_cls(**explainer_args)
    return explainer
