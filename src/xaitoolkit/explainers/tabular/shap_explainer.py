"""
SHAP解释器实现
用于表格数据的SHAP值计算
"""

import numpy as np
import shap
from typing import Any, Dict, List, Optional, Tuple, Union
from xaitoolkit.core.explainer import BaseExplainer, ExplanationResult
import logging
import warnings
import pandas as pd

# 忽略SHAP的警告
warnings.filterwarnings("ignore", category=UserWarning, module="shap")

logger = logging.getLogger(__name__)


class SHAPExplainer(BaseExplainer):
    """
    SHAP解释器实现

    支持:
    - KernelSHAP (模型无关)
    - TreeSHAP (树模型专用)
    - LinearSHAP (线性模型)
    """

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 background_data: Optional[Union[np.ndarray, pd.DataFrame]] = None,
                 **kwargs):
        """
        初始化SHAP解释器

        参数:
        model: 待解释的模型
        task_type: 任务类型 ('classification'/'regression')
        feature_names: 特征名称列表
        background_data: 背景数据集 (KernelSHAP/LinearSHAP必需)
        kwargs:
          - method: 指定SHAP方法 ('auto', 'kernel', 'tree', 'linear')
          - nsamples: KernelSHAP的样本数
          - background_size: 背景数据的最大行数
          - link: 链接函数 ('identity'/'logit')
          - training_data: background_data 的别名
        """
        super().__init__(model, task_type, feature_names, **kwargs)

        # 设置默认参数
        self.method = kwargs.get('method', 'auto')
        self.nsamples = kwargs.get('nsamples', 500)
        self.background_size = kwargs.get('background_size', 100)
        self.link = kwargs.get('link', 'identity')

        if background_data is None:
            background_data = kwargs.get('training_data')

        # 创建背景数据
        self.background_data = self._prepare_background(background_data)

        # 初始化解释器
        self.explainer = self._create_explainer()
        self.output_scale = self._output_scale()

        # 日志记录
        logger.info(f"SHAP解释器初始化完成: method={self.method}, nsamples={self.nsamples}")

    def _prepare_background(self, background_data):
        """准备背景数据集"""
        if background_data is None and hasattr(self.model, 'X_train_'):
            background_data = self.model.X_train_

        if background_data is None:
            return None

        background = self._prepare_matrix(background_data)
        self._get_feature_names(background.shape[1])
        if len(background) > self.background_size:
            background = shap.sample(background, self.background_size, random_state=0)
        return background

    def _create_explainer(self):
        """根据模型类型创建合适的SHAP解释器"""
        model_type = str(type(self.model)).lower()

        # 自动检测最佳方法
        if self.method == 'auto':
            if any(key in model_type for key in ('tree', 'forest', 'boost', 'xgb', 'lgbm')):
                self.method = 'tree'
            elif 'linear' in model_type or 'logistic' in model_type \
                    or 'ridge' in model_type or 'lasso' in model_type:
                self.method = 'linear'
            else:
                self.method = 'kernel'

        if self.method in ('kernel', 'linear') and self.background_data is None:
            raise ValueError(f"SHAP方法 {self.method} 需要背景数据 (background_data)")

        # 创建特定类型的解释器
        if self.method == 'tree':
            if self.background_data is None:
                return shap.TreeExplainer(self.model)
            return shap.TreeExplainer(
                self.model,
                data=self.background_data,
                feature_perturbation='interventional'
            )
        elif self.method == 'linear':
            return shap.LinearExplainer(self.model, self.background_data)
        elif self.method == 'kernel':
            return shap.KernelExplainer(
                self._predict_fn(),
                self.background_data,
                link=self.link
            )
        else:
            raise ValueError(f"不支持的SHAP方法: {self.method}")

    def _output_scale(self) -> str:
        """SHAP值所在的模型输出尺度: 'probability', 'log-odds' 或 'raw'"""
        if self.task_type != 'classification':
            return 'raw'
        if self.method == 'kernel':
            return 'log-odds' if self.link == 'logit' else 'probability'
        if self.method == 'linear':
            return 'log-odds'
        tree_output = getattr(getattr(self.explainer, 'model', None), 'tree_output', None)
        return {'probability': 'probability', 'log_odds': 'log-odds'}.get(tree_output, 'raw')

    def _compute_shap_values(self, data: np.ndarray, **kwargs) -> np.ndarray:
        """计算SHAP值并统一为 (n_samples, n_features[, n_outputs]) 的数组"""
        if self.method == 'kernel':
            values = self.explainer.shap_values(
                data,
                nsamples=kwargs.get('nsamples', self.nsamples),
                silent=True
            )
        elif self.method == 'tree':
            values = self.explainer.shap_values(
                data,
                check_additivity=kwargs.get('check_additivity', True)
            )
        else:
            values = self.explainer.shap_values(data)

        # 旧版本shap对多输出模型返回列表
        if isinstance(values, list):
            values = np.stack(values, axis=-1)
        values = np.asarray(values, dtype=float)
        if values.ndim == 1:
            values = values.reshape(1, -1)
        return values

    def _select_output(self, values: np.ndarray, target: Optional[int]) -> Tuple[np.ndarray, float]:
        """
        选取目标类别的SHAP值和对应的期望值

        二分类模型只有一个输出时 (LinearExplainer, GBM 的 TreeExplainer) 该输出解释类别1,
        目标为类别0时取其补: log-odds 取反, 概率取 1 - p
        """
        expected = np.ravel(self.explainer.expected_value)
        if values.ndim == 3:
            index = target if target is not None else 0
            if index >= values.shape[-1]:
                logger.warning(f"目标类别{index}超出范围，使用第一个类别")
                index = 0
            return values[..., index], float(expected[index])

        base_value = float(expected[0])
        if self.task_type != 'classification' or target is None or target == 1:
            return values, base_value
        if target != 0:
            raise ValueError(f"模型只有一个输出 (二分类), 目标类别必须是0或1, 得到 {target}")
        complement = 1.0 - base_value if self.output_scale == 'probability' else -base_value
        return -values, complement

    def explain(self,
                input_data: Union[np.ndarray, list, pd.DataFrame],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        解释单个样本

        参数:
        input_data: 输入数据 (单样本)
        target: 目标类别 (分类任务，默认为预测类别)
        kwargs:
          - nsamples: 覆盖初始化的样本数
          - check_additivity: 验证SHAP值相加等于预测值 (TreeSHAP)
        """
        instance = self._prepare_instance(input_data)
        target = self._resolve_target(instance, target)

        values = self._compute_shap_values(instance.reshape(1, -1), **kwargs)
        return self._create_explanation(instance, values[0], target)

    def batch_explain(self,
                      input_batch: Union[np.ndarray, pd.DataFrame],
                      targets: Optional[List[Any]] = None,
                      **kwargs) -> List[ExplanationResult]:
        """
        批量解释 (一次性计算所有样本的SHAP值)
        """
        data = self._prepare_matrix(input_batch)

        if targets is None:
            targets = [None] * len(data)
        if len(targets) != len(data):
            raise ValueError("targets 的长度必须与样本数一致")

        all_values = self._compute_shap_values(data, **kwargs)

        results = []
        for row, row_values, target in zip(data, all_values, targets):
            target = self._resolve_target(row, target)
            results.append(self._create_explanation(row, row_values, target))
        return results

    def summarize(self,
                  data: Union[np.ndarray, pd.DataFrame],
                  target: Optional[int] = None,
                  **kwargs) -> ExplanationResult:
        """
        全局SHAP摘要 (对应 shap.summary_plot)

        参数:
        data: 要汇总的数据集
        target: 目标类别 (None表示对所有类别的|SHAP|取平均)

        返回:
        feature_importance 为每个特征的平均 |SHAP| 值
        """
        matrix = self._prepare_matrix(data)
        values = self._compute_shap_values(matrix, **kwargs)

        if values.ndim == 3 and target is None:
            magnitudes = np.abs(values).mean(axis=-1)
            shown = magnitudes
        else:
            shown, _ = self._select_output(values, target)
            magnitudes = np.abs(shown)

        feature_names = self._get_feature_names(matrix.shape[1])
        mean_abs = magnitudes.mean(axis=0)

        return ExplanationResult(
            raw_result=values,
            feature_importance={name: float(v) for name, v in zip(feature_names, mean_abs)},
            visualization={
                'shap_values': shown,
                'data': matrix,
                'feature_names': feature_names,
                'type': 'shap_summary'
            },
            metadata={
                'method': 'shap',
                'shap_method': self.method,
                'output_scale': self.output_scale,
                'scope': 'global',
                'num_rows': len(matrix),
                'target_class': target
            }
        )

    def _create_explanation(self, instance: np.ndarray, row_values: np.ndarray,
                            target: Optional[int]) -> ExplanationResult:
        """从单行SHAP值创建解释结果"""
        values, base_value = self._select_output(row_values[np.newaxis, ...], target)
        values = values[0]

        result = ExplanationResult(
            raw_result=row_values,
            metadata={
                'method': 'shap',
                'shap_method': self.method,
                'output_scale': self.output_scale,
                'scope': self.scope,
                'nsamples': self.nsamples if self.method == 'kernel' else None,
                'explainer_type': type(self.explainer).__name__,
                'target_class': target,
                'instance': instance.tolist()
            }
        )

        result.feature_importance = self._get_feature_importance(values)
        result.metrics = {
            'base_value': base_value,
            'explained_output': float(base_value + values.sum())
        }
        result.visualization = {
            'base_value': base_value,
            'values': values,
            'data': instance,
            'feature_names': self.feature_names,
            'type': 'shap'
        }
        return result

    def _get_feature_importance(self, shap_values: np.ndarray) -> Dict[str, float]:
        """从SHAP值创建特征重要性字典"""
        names = self._get_feature_names(len(shap_values))
        return {name: float(val) for name, val in zip(names, shap_values)}
