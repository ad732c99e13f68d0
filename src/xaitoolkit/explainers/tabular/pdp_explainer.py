"""
部分依赖(PDP)与ICE解释器实现
基于 sklearn.inspection.partial_dependence 计算特征的边际效应
"""

import numpy as np
from sklearn.inspection import partial_dependence
from typing import Any, Dict, List, Optional, Sequence, Union
from xaitoolkit.core.explainer import BaseExplainer, ExplanationResult
import logging
import pandas as pd

logger = logging.getLogger(__name__)


class PartialDependenceExplainer(BaseExplainer):
    """
    部分依赖解释器 (全局解释)

    对每个特征在网格上取值，平均模型输出得到PDP曲线，
    kind='individual'/'both' 时同时返回每个样本的ICE曲线
    """

    scope = 'global'

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 **kwargs):
        """
        初始化PDP解释器

        参数:
        model: 已训练的scikit-learn估计器
        task_type: 任务类型 ('classification'/'regression')
        feature_names: 特征名称列表
        kwargs:
          - grid_resolution: 每个特征的网格点数
          - percentiles: 网格取值的百分位范围
          - kind: 'average', 'individual' 或 'both'
          - method: sklearn计算方法 (默认 'brute'，保证分类任务输出概率)
        """
        super().__init__(model, task_type, feature_names, **kwargs)

        self.grid_resolution = kwargs.get('grid_resolution', 50)
        self.percentiles = tuple(kwargs.get('percentiles', (0.05, 0.95)))
        self.kind = kwargs.get('kind', 'average')
        self.pd_method = kwargs.get('method', 'brute')

        if self.kind not in ('average', 'individual', 'both'):
            raise ValueError(f"不支持的PDP类型: {self.kind}")

        logger.info(f"PDP解释器初始化完成: grid_resolution={self.grid_resolution}, kind={self.kind}")

    def explain(self,
                input_data: Union[np.ndarray, pd.DataFrame],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        计算数据集上的部分依赖

        参数:
        input_data: 用于平均的数据集
        target: 目标类别 (分类任务; 二分类默认为正类1)
        kwargs:
          - features: 特征列表 (名称、索引或二元组，默认全部单特征)
          - kind: 覆盖初始化的类型
          - grid_resolution: 覆盖初始化的网格点数
        """
        data = self._prepare_matrix(input_data)
        names = self._get_feature_names(data.shape[1])

        kind = kwargs.get('kind', self.kind)
        grid_resolution = kwargs.get('grid_resolution', self.grid_resolution)
        features = kwargs.get('features') or list(range(data.shape[1]))

        curves = []
        feature_importance = {}
        for feature in features:
            indices = self._feature_indices(feature)
            # 双特征交互只支持平均曲线
            feature_kind = kind if len(indices) == 1 else 'average'

            bunch = partial_dependence(
                self.model,
                data,
                indices if len(indices) > 1 else indices[0:1],
                percentiles=self.percentiles,
                grid_resolution=grid_resolution,
                method=self.pd_method,
                kind=feature_kind
            )

            curve = {
                'feature': [names[i] for i in indices] if len(indices) > 1 else names[indices[0]],
                'grid': [np.asarray(g, dtype=float) for g in bunch['grid_values']],
            }
            if 'average' in bunch:
                curve['average'] = self._select_target(np.asarray(bunch['average']), target)
            if 'individual' in bunch:
                curve['individual'] = self._select_target(np.asarray(bunch['individual']), target)
            if len(indices) == 1:
                curve['grid'] = curve['grid'][0]
                # 按PDP曲线的波动幅度衡量特征重要性
                average = curve.get('average')
                if average is None:
                    average = curve['individual'].mean(axis=0)
                feature_importance[names[indices[0]]] = float(np.std(average))

            curves.append(curve)

        result = ExplanationResult(
            raw_result=curves,
            feature_importance=feature_importance,
            metadata={
                'method': 'pdp',
                'scope': self.scope,
                'kind': kind,
                'grid_resolution': grid_resolution,
                'percentiles': list(self.percentiles),
                'target_class': self._default_target(target),
                'num_rows': len(data)
            }
        )
        result.visualization = {'curves': curves, 'type': 'pdp'}

        return result

    def _feature_indices(self, feature: Union[int, str, Sequence]) -> List[int]:
        """将特征名/索引/二元组转换为索引列表"""
        if isinstance(feature, (list, tuple)):
            if len(feature) != 2:
                raise ValueError(f"交互特征必须是二元组, 得到 {feature}")
            return [self._feature_index(f) for f in feature]
        return [self._feature_index(feature)]

    def _feature_index(self, feature: Union[int, str]) -> int:
        if isinstance(feature, str):
            if feature not in self.feature_names:
                raise ValueError(f"未知特征: {feature}")
            return self.feature_names.index(feature)
        index = int(feature)
        if not 0 <= index < len(self.feature_names):
            raise ValueError(f"特征索引越界: {index}")
        return index

    def _default_target(self, target: Optional[Any]) -> Optional[int]:
        if self.task_type != 'classification':
            return None
        return 1 if target is None else int(target)

    def _select_target(self, values: np.ndarray, target: Optional[Any]) -> np.ndarray:
        """从 (n_outputs, ...) 中选出目标类别的曲线"""
        if self.task_type != 'classification':
            return values[0]

        target = self._default_target(target)
        if values.shape[0] == 1:
            # 二分类时sklearn只返回正类概率
            if target == 0:
                return 1.0 - values[0]
            return values[0]

        if target >= values.shape[0]:
            raise ValueError(f"目标类别 {target} 超出范围 (共 {values.shape[0]} 类)")
        return values[target]
