"""
置换重要性解释器实现
提供与 eli5 的 PermutationImportance / show_weights 等价的全局特征权重
"""

import numpy as np
from sklearn.inspection import permutation_importance
from typing import Any, Dict, List, Optional, Union
from xaitoolkit.core.explainer import BaseExplainer, ExplanationResult
import logging
import pandas as pd

logger = logging.getLogger(__name__)


class PermutationImportanceExplainer(BaseExplainer):
    """
    置换重要性解释器 (全局解释)

    随机打乱单个特征列，以模型得分的下降量衡量该特征的重要性
    """

    scope = 'global'

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 **kwargs):
        """
        初始化置换重要性解释器

        参数:
        model: 已训练的scikit-learn估计器
        task_type: 任务类型 ('classification'/'regression')
        feature_names: 特征名称列表
        kwargs:
          - n_repeats: 每个特征的打乱次数
          - scoring: 评分函数 (None表示使用估计器的score方法)
          - random_state: 随机种子
          - n_jobs: 并行任务数
        """
        super().__init__(model, task_type, feature_names, **kwargs)

        self.n_repeats = kwargs.get('n_repeats', 10)
        self.scoring = kwargs.get('scoring', None)
        self.random_state = kwargs.get('random_state', 42)
        self.n_jobs = kwargs.get('n_jobs', None)

        logger.info(f"置换重要性解释器初始化完成: n_repeats={self.n_repeats}, scoring={self.scoring}")

    def explain(self,
                input_data: Union[np.ndarray, pd.DataFrame],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        在验证数据上计算置换重要性

        参数:
        input_data: 特征矩阵
        target: 真实标签 (必需)
        kwargs:
          - n_repeats: 覆盖初始化的打乱次数
        """
        if target is None:
            raise ValueError("置换重要性需要真实标签 (target)")

        data = self._prepare_matrix(input_data)
        labels = np.asarray(target)
        if len(labels) != len(data):
            raise ValueError(f"标签数量 ({len(labels)}) 与样本数 ({len(data)}) 不一致")

        names = self._get_feature_names(data.shape[1])
        n_repeats = kwargs.get('n_repeats', self.n_repeats)

        bunch = permutation_importance(
            self.model,
            data,
            labels,
            scoring=self.scoring,
            n_repeats=n_repeats,
            random_state=self.random_state,
            n_jobs=self.n_jobs
        )

        weights = self._weights_table(names, bunch.importances_mean, bunch.importances_std)

        result = ExplanationResult(
            raw_result=bunch,
            feature_importance={name: float(v) for name, v in zip(names, bunch.importances_mean)},
            metadata={
                'method': 'permutation_importance',
                'scope': self.scope,
                'n_repeats': n_repeats,
                'scoring': self.scoring,
                'num_rows': len(data)
            }
        )
        result.visualization = {
            'weights': weights,
            'importances': bunch.importances,
            'type': 'weights'
        }
        return result

    def explain_weights(self) -> ExplanationResult:
        """
        返回模型自带的权重 (对应 eli5.explain_weights)

        线性模型使用 coef_，树模型使用 feature_importances_
        """
        if hasattr(self.model, 'coef_'):
            coef = np.asarray(self.model.coef_, dtype=float)
            if coef.ndim == 2:
                # 多分类取各类别系数绝对值的平均
                coef = coef[0] if coef.shape[0] == 1 else np.abs(coef).mean(axis=0)
            source = 'coef_'
        elif hasattr(self.model, 'feature_importances_'):
            coef = np.asarray(self.model.feature_importances_, dtype=float)
            source = 'feature_importances_'
        else:
            raise ValueError(f"模型 {type(self.model).__name__} 没有可解释的内置权重")

        names = self._get_feature_names(len(coef))
        result = ExplanationResult(
            raw_result=coef,
            feature_importance={name: float(v) for name, v in zip(names, coef)},
            metadata={'method': 'model_weights', 'scope': self.scope, 'source': source}
        )
        if hasattr(self.model, 'intercept_'):
            result.metrics['bias'] = float(np.ravel(self.model.intercept_)[0])

        result.visualization = {
            'weights': self._weights_table(names, coef, np.zeros_like(coef)),
            'type': 'weights'
        }
        return result

    @staticmethod
    def _weights_table(names: List[str], weights: np.ndarray, std: np.ndarray) -> List[Dict[str, Any]]:
        rows = [
            {'feature': name, 'weight': float(w), 'std': float(s)}
            for name, w, s in zip(names, weights, std)
        ]
        return sorted(rows, key=lambda r: r['weight'], reverse=True)

    @staticmethod
    def show_weights(result: ExplanationResult, top: Optional[int] = None) -> str:
        """
        以 eli5.show_weights 的格式渲染权重表

        参数:
        result: explain / explain_weights 的结果
        top: 只显示前top个特征

        返回:
        文本表格, 每行 "权重 ± 2*标准差  特征名"
        """
        rows = result.visualization['weights']
        if top is not None:
            rows = rows[:top]

        lines = [f"{'Weight':>18}  Feature"]
        for row in rows:
            lines.append(f"{row['weight']:>8.4f} ± {2 * row['std']:.4f}  {row['feature']}")

        hidden = len(result.visualization['weights']) - len(rows)
        if hidden > 0:
            lines.append(f"{'':>18}  ... {hidden} more ...")
        return "\n".join(lines)
