"""
解释器抽象基类
定义所有解释器必须实现的统一接口
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union
import logging

import numpy as np
import pandas as pd
from tqdm import tqdm

from xaitoolkit.utils.validation import validate_array, validate_choice, validate_feature_names

logger = logging.getLogger(__name__)

TASK_TYPES = ['classification', 'regression']


@dataclass
class ExplanationResult:
    """
    解释结果数据容器

    属性:
    - raw_result: 解释器原始输出
    - feature_importance: 特征重要性字典 {特征名: 重要性值}
    - visualization: 可视化数据 (绘图所需的原始数据)
    - metrics: 解释质量指标 {指标名: 值}
    - metadata: 元数据 (解释方法、作用范围、目标类别等)
    - counterfactuals: 反事实解释列表 [{'features': ..., 'prediction': ..., 'changes': ...}]
    - rules: Anchor规则列表 (可读的谓词字符串)
    """
    raw_result: Any
    feature_importance: Dict[str, float] = field(default_factory=dict)
    visualization: Any = None
    metrics: Dict[str, float] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    counterfactuals: List[Dict[str, Any]] = field(default_factory=list)
    rules: List[str] = field(default_factory=list)

    @staticmethod
    def to_serializable(obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, np.generic):
            return obj.item()
        elif isinstance(obj, pd.DataFrame):
            return obj.to_dict(orient='records')
        elif isinstance(obj, pd.Series):
            return obj.to_dict()
        elif isinstance(obj, dict):
            return {str(k): ExplanationResult.to_serializable(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [ExplanationResult.to_serializable(v) for v in obj]
        else:
            return obj

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        """将解释结果转换为字典 (默认不包含原始结果对象)"""
        data = dict(self.__dict__)
        if not include_raw:
            data.pop('raw_result')
        return ExplanationResult.to_serializable(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExplanationResult':
        """从字典 (例如JSON文件内容) 恢复解释结果"""
        return cls(
            raw_result=data.get('raw_result'),
            feature_importance=dict(data.get('feature_importance') or {}),
            visualization=data.get('visualization'),
            metrics=dict(data.get('metrics') or {}),
            metadata=dict(data.get('metadata') or {}),
            counterfactuals=list(data.get('counterfactuals') or []),
            rules=list(data.get('rules') or [])
        )

    def top_features(self, k: Optional[int] = None) -> List[tuple]:
        """按重要性绝对值降序返回 (特征名, 重要性) 列表"""
        ranked = sorted(self.feature_importance.items(), key=lambda x: abs(x[1]), reverse=True)
        return ranked[:k] if k is not None else ranked


class BaseExplainer(ABC):
    """
    解释器抽象基类
    所有具体解释器必须继承此类并实现抽象方法

    scope 为 'local' 的解释器解释单个样本,
    为 'global' 的解释器解释整个数据集上的模型行为
    """

    scope = 'local'

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 **kwargs):
        """
        初始化解释器

        参数:
        model: 待解释的模型对象
        task_type: 任务类型 ('classification', 'regression')
        feature_names: 特征名称列表
        kwargs: 解释器特定参数
        """
        self.model = model
        self.task_type = task_type
        self.feature_names = list(feature_names) if feature_names is not None else None
        self.params = kwargs

        # 验证模型和任务类型
        self._validate_model()

    def _validate_model(self):
        """验证模型兼容性"""
        if not callable(getattr(self.model, "predict", None)):
            raise ValueError("模型必须实现 predict 方法")

        validate_choice(self.task_type, TASK_TYPES, "task_type")

        if self.task_type == 'classification' and not callable(getattr(self.model, "predict_proba", None)):
            raise ValueError("分类任务的模型必须实现 predict_proba 方法")

    @abstractmethod
    def explain(self,
                input_data: Union[np.ndarray, list, dict, pd.DataFrame],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        解释单个输入样本 (全局解释器: 整个数据集)

        参数:
        input_data: 输入数据 (数组/列表/字典/DataFrame)
        target: 解释的目标类别/值 (分类任务中可选)
        kwargs: 解释过程附加参数

        返回:
        ExplanationResult 对象
        """
        pass

    def batch_explain(self,
                      input_batch: Union[np.ndarray, list, pd.DataFrame],
                      targets: Optional[List[Any]] = None,
                      **kwargs) -> List[ExplanationResult]:
        """
        批量解释多个样本 (默认实现，可被覆盖)

        参数:
        input_batch: 输入数据批次
        targets: 每个样本的目标类别/值列表
        kwargs: 解释过程附加参数

        返回:
        ExplanationResult 对象列表
        """
        if self.scope == 'global':
            raise ValueError(f"{type(self).__name__} 是全局解释器，请直接调用 explain")

        rows = self._prepare_matrix(input_batch)
        targets = targets if targets is not None else [None] * len(rows)
        if len(targets) != len(rows):
            raise ValueError("targets 的长度必须与样本数一致")

        results = []
        for row, target in tqdm(zip(rows, targets), total=len(rows),
                                desc=type(self).__name__, disable=len(rows) < 10):
            results.append(self.explain(row, target=target, **kwargs))

        return results

    def evaluate_explanation(self,
                             explanation: ExplanationResult,
                             data: Union[np.ndarray, pd.DataFrame],
                             metrics: List[str] = ['fidelity'],
                             **kwargs) -> ExplanationResult:
        """
        评估单个局部解释的质量

        参数:
        explanation: 要评估的解释结果 (必须带有 metadata['instance'])
        data: 参考数据集 (用于计算基线)
        metrics: 要计算的指标列表 ('fidelity', 'stability')
        kwargs: 评估参数 (top_k, num_perturbations, noise_scale)

        返回:
        更新了metrics属性的ExplanationResult
        """
        from xaitoolkit.evaluation.fidelity import FidelityEvaluator
        from xaitoolkit.evaluation.stability import StabilityEvaluator

        instance = explanation.metadata.get('instance')
        if instance is None:
            raise ValueError("解释结果缺少 metadata['instance']，无法评估")

        sample = np.asarray(instance, dtype=float).reshape(1, -1)
        reference = self._prepare_matrix(data)

        if 'fidelity' in metrics:
            scores = FidelityEvaluator.evaluate_all(
                self.model, sample, [explanation.feature_importance],
                feature_names=self.feature_names,
                task_type=self.task_type,
                reference_data=reference,
                **kwargs
            )
            explanation.metrics.update(scores)

        if 'stability' in metrics:
            explanation.metrics['local_stability'] = StabilityEvaluator.local_stability(
                self, sample, [explanation.feature_importance],
                reference_data=reference,
                targets=[explanation.metadata.get('target_class')],
                **kwargs
            )

        explanation.metadata['evaluation_metrics'] = list(metrics)
        return explanation

    # ---- 公共辅助方法 ----

    def _prepare_instance(self, input_data: Any) -> np.ndarray:
        """将单个样本转换为一维浮点数组"""
        if isinstance(input_data, pd.DataFrame):
            if len(input_data) != 1:
                raise ValueError(f"期望单个样本，得到 {len(input_data)} 行")
            self._infer_feature_names(input_data)
            input_data = input_data.iloc[0].values
        elif isinstance(input_data, pd.Series):
            input_data = input_data.values
        elif isinstance(input_data, dict):
            if self.feature_names is None:
                self.feature_names = list(input_data.keys())
            input_data = [input_data[name] for name in self.feature_names]

        instance = np.asarray(input_data, dtype=float)
        if instance.ndim > 1:
            instance = instance.flatten()
        return instance

    def _prepare_matrix(self, data: Any) -> np.ndarray:
        """将数据集转换为二维浮点数组"""
        if isinstance(data, pd.DataFrame):
            self._infer_feature_names(data)
            data = data.values
        matrix = np.asarray(data, dtype=float)
        if matrix.ndim == 1:
            matrix = matrix.reshape(1, -1)
        return validate_array(matrix, ndim=2, name="input data")

    def _infer_feature_names(self, frame: pd.DataFrame):
        if self.feature_names is None:
            self.feature_names = [str(c) for c in frame.columns]

    def _get_feature_names(self, n_features: int) -> List[str]:
        """返回特征名，未设置时使用 feature_{i}"""
        if self.feature_names is None:
            self.feature_names = [f'feature_{i}' for i in range(n_features)]
        self.feature_names = validate_feature_names(self.feature_names, n_features)
        return self.feature_names

    def _predict_fn(self) -> Callable[[np.ndarray], np.ndarray]:
        """分类任务返回 predict_proba，回归任务返回 predict"""
        if self.task_type == 'classification':
            return self.model.predict_proba
        return self.model.predict

    def _resolve_target(self, instance: np.ndarray, target: Optional[Any] = None) -> Optional[int]:
        """确定分类任务的目标类别 (未指定时使用预测概率最高的类别)"""
        if self.task_type != 'classification':
            return None
        if target is not None:
            return int(target)
        proba = self.model.predict_proba(instance.reshape(1, -1))[0]
        return int(np.argmax(proba))

    def _scalar_output(self, data: np.ndarray, target: Optional[int]) -> np.ndarray:
        """返回每行的标量输出: 目标类别概率或回归预测值"""
        output = np.asarray(self._predict_fn()(data), dtype=float)
        if output.ndim == 2:
            if target is None:
                return output[:, 0]
            return output[:, target]
        return output


def format_explanation_result(result: ExplanationResult, max_features: int = 20) -> str:
    """
    把 ExplanationResult 排成控制台可读的文本

    参数:
    result: 解释结果
    max_features: 最多列出的特征数 (按绝对值排序)
    """
    method = result.metadata.get('method', 'unknown')
    lines = [f"==== {method} ({result.metadata.get('scope', '-')}) ===="]

    context = {k: v for k, v in result.metadata.items() if k not in ('method', 'scope', 'instance')}
    for key, value in context.items():
        lines.append(f"  {key}: {value}")

    ranked = result.top_features(max_features)
    lines.append(f"\n[特征重要性 feature_importance] {len(ranked)}/{len(result.feature_importance)}")
    width = max((len(name) for name, _ in ranked), default=0)
    for name, score in ranked:
        lines.append(f"  {name.rjust(width)}: {score:.4f}")

    if result.metrics:
        lines.append("\n[解释质量指标 metrics]")
        lines.extend(f"  {key}: {value:.4f}" if isinstance(value, float) else f"  {key}: {value}"
                     for key, value in result.metrics.items())

    if result.rules:
        lines.append("\n[Anchor规则 rules]")
        lines.append("  IF " + " AND ".join(result.rules))

    for i, cf in enumerate(result.counterfactuals):
        if i == 0:
            lines.append("\n[反事实 counterfactuals]")
        moves = ", ".join(f"{name} {c['original']:.3g} -> {c['counterfactual']:.3g}"
                          for name, c in cf.get('changes', {}).items())
        lines.append(f"  CF#{i + 1} prediction={cf.get('prediction')}: {moves or '无变化'}")

    return "\n".join(lines)


def display_explanation_result(result: ExplanationResult, max_features: int = 20):
    """打印 format_explanation_result 的输出"""
    print(format_explanation_result(result, max_features) + "\n")
