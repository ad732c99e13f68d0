"""
Integrated Gradients解释器实现
沿基线到输入的直线路径积分梯度，得到满足完备性的特征归因
"""

import numpy as np
from typing import Any, Dict, List, Optional, Tuple, Union
from xaitoolkit.core.explainer import TASK_TYPES, BaseExplainer, ExplanationResult
from xaitoolkit.utils.validation import validate_choice
import logging
import pandas as pd

logger = logging.getLogger(__name__)

INTEGRATION_METHODS = [
    'riemann_left',
    'riemann_right',
    'riemann_middle',
    'riemann_trapezoid',
    'gausslegendre'
]


def integration_points(steps: int, method: str = 'gausslegendre') -> Tuple[np.ndarray, np.ndarray]:
    """
    返回 [0, 1] 上的积分节点 alpha 及对应权重

    参数:
    steps: 节点数
    method: 积分规则 (见 INTEGRATION_METHODS)

    返回:
    (alphas, weights)，权重之和为1
    """
    if steps < 2:
        raise ValueError(f"积分步数必须 >= 2, 得到 {steps}")

    if method == 'gausslegendre':
        nodes, weights = np.polynomial.legendre.leggauss(steps)
        return (nodes + 1) / 2, weights / 2
    if method == 'riemann_left':
        return np.arange(steps) / steps, np.full(steps, 1.0 / steps)
    if method == 'riemann_right':
        return np.arange(1, steps + 1) / steps, np.full(steps, 1.0 / steps)
    if method == 'riemann_middle':
        return (np.arange(steps) + 0.5) / steps, np.full(steps, 1.0 / steps)
    if method == 'riemann_trapezoid':
        alphas = np.linspace(0, 1, steps)
        weights = np.full(steps, 1.0 / (steps - 1))
        weights[[0, -1]] /= 2
        return alphas, weights

    raise ValueError(f"不支持的积分方法: {method}，可用方法: {INTEGRATION_METHODS}")


class IntegratedGradientsExplainer(BaseExplainer):
    """
    Integrated Gradients解释器实现

    - PyTorch模型: 通过 captum 的 IntegratedGradients 使用自动微分
    - 其他模型: 视为黑盒，用中心差分近似预测函数的梯度
    """

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 training_data: Optional[Union[np.ndarray, pd.DataFrame]] = None,
                 **kwargs):
        """
        初始化Integrated Gradients解释器

        参数:
        model: 待解释的模型
        task_type: 任务类型 ('classification'/'regression')
        feature_names: 特征名称列表
        training_data: 训练数据 (基线为 'mean'/'median' 时需要)
        kwargs:
          - baseline: 基线 ('zeros', 'mean', 'median' 或数组)
          - steps: 积分步数
          - method: 积分规则 ('gausslegendre', 'riemann_trapezoid', ...)
          - epsilon: 黑盒模型中心差分步长
          - model_type: 模型框架 ('pytorch', 'blackbox')
        """
        super().__init__(model, task_type, feature_names, **kwargs)

        self.training_data = self._prepare_matrix(training_data) if training_data is not None else None
        if self.training_data is not None:
            self._get_feature_names(self.training_data.shape[1])

        # 设置参数
        default_baseline = 'mean' if self.training_data is not None else 'zeros'
        self.baseline = kwargs.get('baseline', default_baseline)
        self.steps = kwargs.get('steps', 50)
        self.method = kwargs.get('method', 'gausslegendre')
        self.epsilon = kwargs.get('epsilon', 1e-4)
        self.model_type = kwargs.get('model_type') or self._detect_model_type()

        if self.method not in INTEGRATION_METHODS:
            raise ValueError(f"不支持的积分方法: {self.method}，可用方法: {INTEGRATION_METHODS}")

        logger.info(f"Integrated Gradients解释器初始化完成: steps={self.steps}, "
                    f"method={self.method}, model_type={self.model_type}")

    def _validate_model(self):
        """PyTorch模块由captum直接调用 forward, 不需要 predict/predict_proba"""
        if (self.params.get('model_type') or self._detect_model_type()) == 'pytorch':
            validate_choice(self.task_type, TASK_TYPES, "task_type")
            if not callable(self.model):
                raise ValueError("PyTorch模型必须可调用")
            return
        super()._validate_model()

    def _detect_model_type(self) -> str:
        """自动检测模型类型"""
        if any(cls.__module__.startswith('torch') for cls in type(self.model).__mro__):
            return 'pytorch'
        return 'blackbox'

    def _resolve_baseline(self, instance: np.ndarray) -> np.ndarray:
        """根据配置生成基线向量"""
        baseline = self.baseline
        if isinstance(baseline, str):
            if baseline == 'zeros':
                return np.zeros_like(instance)
            if self.training_data is None:
                raise ValueError(f"基线 '{baseline}' 需要提供 training_data")
            if baseline == 'mean':
                return self.training_data.mean(axis=0)
            if baseline == 'median':
                return np.median(self.training_data, axis=0)
            raise ValueError(f"不支持的基线: {baseline}")

        baseline = np.asarray(baseline, dtype=float).flatten()
        if baseline.shape != instance.shape:
            raise ValueError(f"基线形状 {baseline.shape} 与输入形状 {instance.shape} 不一致")
        return baseline

    def explain(self,
                input_data: Union[np.ndarray, list, pd.DataFrame],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        解释单个样本

        参数:
        input_data: 输入数据 (单样本)
        target: 目标类别 (分类任务)
        kwargs:
          - steps: 覆盖初始化的积分步数
          - absolute: 是否对归因取绝对值 (只影响 feature_importance)
        """
        instance = self._prepare_instance(input_data)
        names = self._get_feature_names(len(instance))
        baseline = self._resolve_baseline(instance)
        steps = kwargs.get('steps', self.steps)

        if self.model_type == 'pytorch':
            attributions, delta, target = self._compute_pytorch(instance, baseline, target, steps)
        else:
            target = self._resolve_target(instance, target)
            attributions, delta = self._compute_blackbox(instance, baseline, target, steps)

        importance = np.abs(attributions) if kwargs.get('absolute', False) else attributions

        result = ExplanationResult(
            raw_result=attributions,
            feature_importance={name: float(v) for name, v in zip(names, importance)},
            metrics={'convergence_delta': float(delta)},
            metadata={
                'method': 'integrated_gradients',
                'scope': self.scope,
                'steps': steps,
                'integration': self.method,
                'model_type': self.model_type,
                'target_class': target,
                'instance': instance.tolist()
            }
        )

        result.visualization = {
            'attributions': attributions,
            'baseline': baseline,
            'input': instance,
            'feature_names': names,
            'type': 'integrated_gradients'
        }
        return result

    def _compute_blackbox(self,
                          instance: np.ndarray,
                          baseline: np.ndarray,
                          target: Optional[int],
                          steps: int) -> Tuple[np.ndarray, float]:
        """黑盒模型: 中心差分梯度 + 数值积分，所有前向计算合并为一次预测调用"""
        alphas, weights = integration_points(steps, self.method)
        n_features = len(instance)
        diff = instance - baseline

        # (steps, n_features) 路径上的点
        path = baseline[np.newaxis, :] + alphas[:, np.newaxis] * diff[np.newaxis, :]

        # 每个路径点上 +eps / -eps 扰动每个特征
        offsets = np.eye(n_features) * self.epsilon
        forward = path[:, np.newaxis, :] + offsets[np.newaxis, :, :]
        backward = path[:, np.newaxis, :] - offsets[np.newaxis, :, :]
        batch = np.concatenate([
            forward.reshape(-1, n_features),
            backward.reshape(-1, n_features),
            np.stack([baseline, instance])
        ])

        outputs = self._scalar_output(batch, target)
        half = steps * n_features
        f_plus = outputs[:half].reshape(steps, n_features)
        f_minus = outputs[half:2 * half].reshape(steps, n_features)
        f_baseline, f_input = outputs[-2], outputs[-1]

        grads = (f_plus - f_minus) / (2 * self.epsilon)
        avg_grads = (weights[:, np.newaxis] * grads).sum(axis=0)
        attributions = diff * avg_grads

        delta = attributions.sum() - (f_input - f_baseline)
        return attributions, delta

    def _compute_pytorch(self,
                         instance: np.ndarray,
                         baseline: np.ndarray,
                         target: Optional[int],
                         steps: int) -> Tuple[np.ndarray, float, Optional[int]]:
        """PyTorch模型: 使用captum计算积分梯度"""
        import torch
        from captum.attr import IntegratedGradients

        self.model.eval()
        inputs = torch.tensor(instance, dtype=torch.float32).unsqueeze(0)
        baselines = torch.tensor(baseline, dtype=torch.float32).unsqueeze(0)

        with torch.no_grad():
            output = self.model(inputs)

        # 确定目标
        if output.dim() == 1:
            captum_target = None
        elif self.task_type == 'classification':
            if target is None:
                target = int(torch.argmax(output[0]))
            captum_target = int(target)
        else:
            captum_target = 0

        ig = IntegratedGradients(self.model)
        attributions, delta = ig.attribute(
            inputs,
            baselines=baselines,
            target=captum_target,
            n_steps=steps,
            method=self.method,
            return_convergence_delta=True
        )

        return (attributions.squeeze(0).detach().cpu().numpy().astype(float),
                float(delta.sum()),
                target)
