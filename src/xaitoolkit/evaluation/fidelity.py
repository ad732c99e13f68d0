"""
解释保真度评估
衡量解释是否忠实于原始模型的行为
"""

import numpy as np
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class FidelityEvaluator:
    """
    解释保真度评估器

    用删除法评估特征归因: 把被认为重要的特征替换成基线值，
    忠实的解释应导致预测明显变化；替换不重要的特征则几乎不影响预测
    """

    @staticmethod
    def _output_fn(model, task_type: str):
        """返回 (数据, 类别) -> 标量输出 的函数"""
        def output(data: np.ndarray, classes: Optional[np.ndarray] = None) -> np.ndarray:
            if task_type == 'classification':
                proba = np.asarray(model.predict_proba(data), dtype=float)
                return proba[np.arange(len(data)), classes]
            return np.asarray(model.predict(data), dtype=float).ravel()
        return output

    @staticmethod
    def _ranked_indices(explanation: Dict[str, float], feature_names: List[str]) -> List[int]:
        """按重要性绝对值降序返回特征索引 (解释中缺失的特征视为0)"""
        scores = np.array([abs(explanation.get(name, 0.0)) for name in feature_names])
        return list(np.argsort(-scores, kind='stable'))

    @staticmethod
    def _replacement_change(model, data: np.ndarray,
                            explanations: List[Dict[str, float]],
                            feature_names: List[str],
                            task_type: str,
                            baseline: np.ndarray,
                            top_k: int,
                            most_important: bool) -> np.ndarray:
        """替换 top_k 个 (最重要或最不重要) 特征后的预测变化 f(x) - f(x')"""
        if len(explanations) != len(data):
            raise ValueError("解释数量必须与样本数一致")

        output = FidelityEvaluator._output_fn(model, task_type)
        classes = None
        if task_type == 'classification':
            classes = np.argmax(model.predict_proba(data), axis=1)

        modified = data.copy()
        for i, exp in enumerate(explanations):
            ranked = FidelityEvaluator._ranked_indices(exp, feature_names)
            chosen = ranked[:top_k] if most_important else ranked[::-1][:top_k]
            modified[i, chosen] = baseline[chosen]

        return output(data, classes) - output(modified, classes)

    @staticmethod
    def fidelity_plus(model, data: np.ndarray,
                      explanations: List[Dict[str, float]],
                      feature_names: List[str],
                      task_type: str = 'classification',
                      baseline: Optional[np.ndarray] = None,
                      top_k: int = 3, **kwargs) -> float:
        """
        计算Fidelity+指标

        参数:
        model: 原始模型
        data: 被解释的样本 (n_samples, n_features)
        explanations: 每个样本的特征重要性字典
        feature_names: 特征名 (与data列对应)
        task_type: 任务类型
        baseline: 替换用的基线向量 (默认 data 的列均值)
        top_k: 替换最重要的前k个特征

        返回:
        平均预测下降量 (越高越好)
        """
        data = np.asarray(data, dtype=float)
        baseline = data.mean(axis=0) if baseline is None else np.asarray(baseline, dtype=float)
        change = FidelityEvaluator._replacement_change(
            model, data, explanations, feature_names, task_type, baseline, top_k, True
        )
        if task_type == 'regression':
            change = np.abs(change)
        return float(np.mean(change))

    @staticmethod
    def fidelity_minus(model, data: np.ndarray,
                       explanations: List[Dict[str, float]],
                       feature_names: List[str],
                       task_type: str = 'classification',
                       baseline: Optional[np.ndarray] = None,
                       top_k: int = 3, **kwargs) -> float:
        """
        计算Fidelity-指标

        参数同 fidelity_plus，替换的是最不重要的k个特征

        返回:
        平均绝对预测变化 (越低越好)
        """
        data = np.asarray(data, dtype=float)
        baseline = data.mean(axis=0) if baseline is None else np.asarray(baseline, dtype=float)
        change = FidelityEvaluator._replacement_change(
            model, data, explanations, feature_names, task_type, baseline, top_k, False
        )
        return float(np.mean(np.abs(change)))

    @staticmethod
    def evaluate_all(model, data: np.ndarray,
                     explanations: List[Dict[str, float]],
                     feature_names: Optional[List[str]] = None,
                     task_type: str = 'classification',
                     reference_data: Optional[np.ndarray] = None,
                     **kwargs) -> Dict[str, float]:
        """
        计算所有保真度指标

        参数:
        reference_data: 用于计算基线均值的数据集 (默认使用data本身)

        返回:
        包含所有保真度指标的字典
        """
        data = np.asarray(data, dtype=float)
        if feature_names is None:
            feature_names = [f'feature_{i}' for i in range(data.shape[1])]

        top_k = kwargs.get('top_k', 3)
        top_k = max(1, min(top_k, data.shape[1] - 1 if data.shape[1] > 1 else 1))

        reference = data if reference_data is None else np.asarray(reference_data, dtype=float)
        baseline = kwargs.get('baseline')
        if baseline is None:
            baseline = reference.mean(axis=0)

        results = {
            'fidelity_plus': FidelityEvaluator.fidelity_plus(
                model, data, explanations, feature_names, task_type, baseline, top_k
            ),
            'fidelity_minus': FidelityEvaluator.fidelity_minus(
                model, data, explanations, feature_names, task_type, baseline, top_k
            )
        }

        # 重要特征与不重要特征影响的差距
        results['fidelity_gap'] = results['fidelity_plus'] - results['fidelity_minus']
        logger.debug(f"保真度评估完成: {results}")

        return results
