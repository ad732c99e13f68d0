"""
解释稳定性评估
衡量解释对于输入微小变化的鲁棒性
"""

import numpy as np
from typing import Any, Dict, List, Optional
import logging
from scipy.spatial.distance import jensenshannon
from sklearn.metrics.pairwise import cosine_similarity

logger = logging.getLogger(__name__)


class StabilityEvaluator:
    """
    解释稳定性评估器

    评估解释对输入微小变化的鲁棒性
    """

    @staticmethod
    def local_stability(explainer, data: np.ndarray,
                        explanations: List[Dict[str, float]],
                        num_perturbations: int = 5,
                        noise_scale: float = 0.05,
                        reference_data: Optional[np.ndarray] = None,
                        random_state: Optional[int] = 0,
                        targets: Optional[List[Any]] = None, **kwargs) -> float:
        """
        计算局部稳定性指标

        参数:
        explainer: 解释器 (局部解释器)
        data: 被解释的样本
        explanations: 原始解释结果列表
        num_perturbations: 每个样本的扰动次数
        noise_scale: 噪声标准差相对于特征标准差的比例
        reference_data: 用于估计特征标准差的数据集 (默认使用data)
        random_state: 随机种子
        targets: 每个样本原解释的目标类别, 扰动样本按同一类别解释 (默认由解释器自行决定)

        返回:
        平均稳定性分数 (0-1之间，越高越好)
        """
        data = np.asarray(data, dtype=float)
        reference = data if reference_data is None else np.asarray(reference_data, dtype=float)
        scale = reference.std(axis=0) if len(reference) > 1 else np.abs(data).mean(axis=0)
        rng = np.random.RandomState(random_state)

        if targets is None:
            targets = [None] * len(data)
        if len(targets) != len(data):
            raise ValueError("targets 的长度必须与样本数一致")

        stability_scores = []

        for sample, original_exp, target in zip(data, explanations, targets):
            # 生成扰动样本
            perturbed_data = StabilityEvaluator._perturb_sample(
                sample, num_perturbations, noise_scale, scale, rng
            )

            # 计算扰动样本的解释并与原始解释比较
            exp_similarities = []
            for perturbed_sample in perturbed_data:
                exp = explainer.explain(perturbed_sample, target=target)
                exp_similarities.append(
                    StabilityEvaluator.explanation_similarity(original_exp, exp.feature_importance)
                )

            # 平均相似度作为当前样本的稳定性
            stability_scores.append(np.mean(exp_similarities))

        return float(np.mean(stability_scores))

    @staticmethod
    def rank_consistency(explanations: List[Dict[str, float]], top_k: int = 3) -> float:
        """
        计算多次解释间前k个特征集合的平均Jaccard相似度

        参数:
        explanations: 同一样本 (或相似样本) 的多次解释
        top_k: 比较的特征数

        返回:
        一致性分数 (0-1之间)
        """
        if len(explanations) < 2:
            return 1.0

        tops = [
            set(name for name, _ in sorted(exp.items(), key=lambda x: abs(x[1]), reverse=True)[:top_k])
            for exp in explanations
        ]
        scores = []
        for i in range(len(tops)):
            for j in range(i + 1, len(tops)):
                union = tops[i] | tops[j]
                scores.append(len(tops[i] & tops[j]) / len(union) if union else 1.0)
        return float(np.mean(scores))

    @staticmethod
    def evaluate_all(explainer, data: np.ndarray,
                     explanations: List[Dict[str, float]],
                     **kwargs) -> Dict[str, float]:
        """
        计算所有稳定性指标

        返回:
        包含所有稳定性指标的字典
        """
        results = {
            'local_stability': StabilityEvaluator.local_stability(
                explainer, data, explanations, **kwargs
            ),
            'rank_consistency': StabilityEvaluator.rank_consistency(
                explanations, top_k=kwargs.get('top_k', 3)
            )
        }
        return results

    @staticmethod
    def _perturb_sample(sample: np.ndarray, num_perturbations: int,
                        noise_scale: float, scale: np.ndarray,
                        rng: np.random.RandomState) -> List[np.ndarray]:
        """生成扰动样本"""
        return [
            sample + rng.normal(0, 1, sample.shape) * noise_scale * scale
            for _ in range(num_perturbations)
        ]

    @staticmethod
    def explanation_similarity(exp1: Dict[str, float], exp2: Dict[str, float]) -> float:
        """计算两个解释之间的相似度 (余弦相似度与Jensen-Shannon相似度的平均)"""
        # 确保特征顺序一致
        features = sorted(set(exp1) | set(exp2))
        if not features:
            return 1.0
        vec1 = np.array([exp1.get(f, 0.0) for f in features], dtype=float)
        vec2 = np.array([exp2.get(f, 0.0) for f in features], dtype=float)

        if np.allclose(vec1, vec2):
            return 1.0

        # 计算余弦相似度
        if np.linalg.norm(vec1) == 0 or np.linalg.norm(vec2) == 0:
            cos_sim = 0.0
        else:
            cos_sim = float(cosine_similarity(vec1.reshape(1, -1), vec2.reshape(1, -1))[0][0])

        # 归一化向量后计算Jensen-Shannon散度
        norm1 = (vec1 - np.min(vec1)) / (np.max(vec1) - np.min(vec1) + 1e-8) + 1e-8
        norm2 = (vec2 - np.min(vec2)) / (np.max(vec2) - np.min(vec2) + 1e-8) + 1e-8
        js_sim = 1 - float(jensenshannon(norm1, norm2, base=2))

        # 平均相似度
        return (cos_sim + js_sim) / 2
