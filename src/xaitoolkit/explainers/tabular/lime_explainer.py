"""
LIME解释器实现
用于表格数据的局部可解释模型
"""

import numpy as np
import lime
import lime.lime_tabular
from lime.submodular_pick import SubmodularPick
from typing import Any, Dict, List, Optional, Union
from xaitoolkit.core.explainer import BaseExplainer, ExplanationResult
import logging
import pandas as pd
import warnings

# 忽略LIME的警告
warnings.filterwarnings("ignore", category=UserWarning, module="lime")

logger = logging.getLogger(__name__)


def _per_label(value: Any, label: int) -> Any:
    """lime 不同版本中 score/local_pred 可能是标量或按类别索引的字典"""
    if isinstance(value, dict):
        if label in value:
            return value[label]
        return next(iter(value.values()), None)
    return value


class LIMEExplainer(BaseExplainer):
    """
    LIME解释器实现

    在待解释样本附近扰动采样，用加权线性代理模型近似黑盒模型。
    pick_representative 用 SP-LIME 选出一组覆盖面最大的局部解释
    """

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 training_data: Optional[Union[np.ndarray, pd.DataFrame]] = None,
                 categorical_features: Optional[List[int]] = None,
                 **kwargs):
        """
        初始化LIME解释器

        参数:
        model: 待解释的模型
        task_type: 任务类型 ('classification'/'regression')
        feature_names: 特征名称列表
        training_data: 训练数据集 (扰动采样使用其统计信息)
        categorical_features: 分类特征的索引列表
        kwargs:
          - kernel_width: 核宽度 (None表示 sqrt(特征数) * 0.75)
          - num_samples: 每次解释的扰动样本数
          - discretize_continuous: 是否离散化连续特征
          - discretizer: 离散化方法 ('quartile', 'decile', 'entropy')
          - random_state: 随机种子
        """
        super().__init__(model, task_type, feature_names, **kwargs)

        if training_data is None:
            training_data = getattr(model, 'X_train_', None)
        if training_data is None:
            raise ValueError("需要训练数据来初始化LIME解释器")

        self.training_data = self._prepare_matrix(training_data)
        names = self._get_feature_names(self.training_data.shape[1])

        self.num_samples = kwargs.get('num_samples', 5000)
        self.random_state = kwargs.get('random_state', 42)
        self.categorical_features = list(categorical_features or [])

        self.explainer = lime.lime_tabular.LimeTabularExplainer(
            training_data=self.training_data,
            mode=task_type,
            feature_names=names,
            categorical_features=self.categorical_features,
            kernel_width=kwargs.get('kernel_width', None),
            discretize_continuous=kwargs.get('discretize_continuous', True),
            discretizer=kwargs.get('discretizer', 'quartile'),
            random_state=self.random_state
        )

        logger.info(f"LIME解释器初始化完成: mode={task_type}, num_samples={self.num_samples}")

    def _label(self, target: Optional[int]) -> int:
        # 回归模式下lime把解释存放在标签1下
        return target if self.task_type == 'classification' else 1

    def explain(self,
                input_data: Union[np.ndarray, list, pd.DataFrame],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        解释单个样本

        参数:
        input_data: 输入数据 (单样本)
        target: 目标类别 (分类任务, 默认为预测类别)
        kwargs:
          - num_features: 解释中保留的特征数
          - num_samples: 覆盖初始化的样本数
        """
        instance = self._prepare_instance(input_data)
        num_features = kwargs.get('num_features', len(instance))
        num_samples = kwargs.get('num_samples', self.num_samples)

        target = self._resolve_target(instance, target)
        label = self._label(target)

        explanation = self.explainer.explain_instance(
            data_row=instance,
            predict_fn=self._predict_fn(),
            labels=(label,),
            num_features=num_features,
            num_samples=num_samples
        )
        return self._build_result(explanation, label, instance, target, num_samples)

    def pick_representative(self,
                            data: Union[np.ndarray, pd.DataFrame],
                            num_exps: int = 5,
                            sample_size: int = 200,
                            **kwargs) -> List[ExplanationResult]:
        """
        SP-LIME: 从数据中挑选一组互补的局部解释作为模型的全局概览

        参数:
        data: 候选样本
        num_exps: 返回的解释数
        sample_size: 参与挑选的最多样本数 (超过时随机抽取)
        kwargs:
          - num_features: 每个解释保留的特征数
          - num_samples: 每个解释的扰动样本数

        返回:
        解释结果列表, metadata['row'] 为样本在 data 中的行号
        """
        matrix = self._prepare_matrix(data)
        num_samples = kwargs.get('num_samples', self.num_samples)

        rng = np.random.RandomState(self.random_state)
        rows = np.arange(len(matrix))
        if len(rows) > sample_size:
            rows = np.sort(rng.choice(rows, sample_size, replace=False))

        pick = SubmodularPick(
            self.explainer,
            matrix[rows],
            self._predict_fn(),
            method='full',
            num_exps_desired=num_exps,
            num_features=kwargs.get('num_features', matrix.shape[1]),
            num_samples=num_samples,
            top_labels=1
        )

        results = []
        for position, explanation in zip(pick.V, pick.sp_explanations):
            row = int(rows[position])
            if self.task_type == 'classification':
                target = int(explanation.available_labels()[0])
            else:
                target = None
            result = self._build_result(explanation, self._label(target), matrix[row], target, num_samples)
            result.metadata['row'] = row
            result.metadata['submodular_pick'] = True
            results.append(result)

        logger.info(f"SP-LIME 从 {len(rows)} 个样本中选出 {len(results)} 个解释")
        return results

    def _build_result(self, explanation, label: int, instance: np.ndarray,
                      target: Optional[int], num_samples: int) -> ExplanationResult:
        names = self.feature_names
        result = ExplanationResult(
            raw_result=explanation,
            feature_importance={names[idx]: float(w) for idx, w in explanation.as_map()[label]},
            metadata={
                'method': 'lime',
                'scope': self.scope,
                'num_samples': num_samples,
                'target_class': target,
                'instance': instance.tolist()
            }
        )

        score = _per_label(explanation.score, label)
        if score is not None:
            result.metrics['local_fidelity_r2'] = float(score)

        result.visualization = self._generate_visualization(explanation, label)
        return result

    def _generate_visualization(self, explanation, label: int) -> Dict[str, Any]:
        """规则列表、代理模型截距与HTML"""
        local_pred = _per_label(explanation.local_pred, label)
        visualization = {
            'as_list': [(rule, float(w)) for rule, w in explanation.as_list(label=label)],
            'intercept': float(explanation.intercept[label]),
            'local_pred': None if local_pred is None else float(np.ravel(local_pred)[0]),
            'type': 'lime'
        }

        try:
            if self.task_type == 'classification':
                visualization['html'] = explanation.as_html(labels=(label,))
            else:
                visualization['html'] = explanation.as_html()
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"无法生成HTML可视化: {str(e)}")
            visualization['html'] = None

        return visualization
