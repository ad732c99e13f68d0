"""
反事实解释器
基于DiCE为单个样本生成“最小改动即可改变预测”的候选输入
"""

import dice_ml
from dice_ml import Dice
import pandas as pd
import numpy as np
from typing import Any, Dict, List, Optional, Union
from xaitoolkit.core.explainer import BaseExplainer, ExplanationResult
import logging
import warnings

warnings.filterwarnings("ignore", category=UserWarning, module="dice_ml")

logger = logging.getLogger(__name__)

DICE_METHODS = ('random', 'genetic', 'kdtree')


class CounterfactualExplainer(BaseExplainer):
    """
    DiCE反事实解释器

    训练数据和结果列组成 dice_ml.Data, 模型包装为 sklearn 后端的 dice_ml.Model。
    结果中 feature_importance 是各特征在反事实中被修改的比例,
    metrics['validity'] 是达到期望结果的反事实比例
    """

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 training_data: Optional[Union[np.ndarray, pd.DataFrame]] = None,
                 training_labels: Optional[Union[np.ndarray, list, pd.Series]] = None,
                 continuous_features: Optional[List[str]] = None,
                 **kwargs):
        """
        参数:
        model: 待解释的模型
        task_type: 'classification' 或 'regression'
        feature_names: 特征名称列表
        training_data: 训练数据集 (必需)
        training_labels: 训练标签, 缺省时用模型在训练数据上的预测
        continuous_features: 连续特征名, 缺省时全部视为连续
        kwargs:
          - method: 'random', 'genetic' 或 'kdtree'
          - total_CFs: 每个样本生成的反事实数量
          - desired_class: 'opposite' 或类别编号 (分类)
          - desired_range: [下限, 上限] (回归)
          - proximity_weight / diversity_weight: 接近度与多样性权重
          - outcome_name: 结果列名
          - random_seed: method='random' 时的随机种子
        """
        super().__init__(model, task_type, feature_names, **kwargs)

        if training_data is None:
            training_data = getattr(model, 'X_train_', None)
        if training_data is None:
            raise ValueError("需要训练数据来初始化DiCE解释器")

        matrix = self._prepare_matrix(training_data)
        names = self._get_feature_names(matrix.shape[1])

        self.outcome_name = kwargs.get('outcome_name', 'target')
        if self.outcome_name in names:
            raise ValueError(f"结果列名 {self.outcome_name} 与特征名冲突")

        self.method = kwargs.get('method', 'random')
        if self.method not in DICE_METHODS:
            raise ValueError(f"未知的DiCE方法: {self.method} (可选 {', '.join(DICE_METHODS)})")

        self.total_CFs = kwargs.get('total_CFs', 5)
        self.desired_class = kwargs.get('desired_class', 'opposite')
        self.desired_range = kwargs.get('desired_range', None)
        self.proximity_weight = kwargs.get('proximity_weight', 0.5)
        self.diversity_weight = kwargs.get('diversity_weight', 1.0)
        self.random_seed = kwargs.get('random_seed', 42)
        self.continuous_features = list(continuous_features) if continuous_features else list(names)

        # 距离按训练数据的取值跨度归一化
        spans = np.ptp(matrix, axis=0)
        self.feature_ranges_ = dict(zip(names, spans.astype(float).tolist()))

        labels = model.predict(matrix) if training_labels is None else training_labels
        frame = pd.DataFrame(matrix, columns=names)
        frame[self.outcome_name] = np.asarray(labels)

        self.data = dice_ml.Data(dataframe=frame,
                                 continuous_features=self.continuous_features,
                                 outcome_name=self.outcome_name)
        self.dice_model = dice_ml.Model(model=model, backend='sklearn',
                                        model_type='classifier' if task_type == 'classification' else 'regressor')
        self.explainer = Dice(self.data, self.dice_model, method=self.method)

        logger.info(f"DiCE解释器初始化完成: method={self.method}, total_CFs={self.total_CFs}, "
                    f"{len(self.continuous_features)} 个连续特征")

    def explain(self,
                input_data: Union[np.ndarray, list, pd.DataFrame, dict],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        为单个样本生成反事实

        参数:
        input_data: 单样本
        target: 期望类别在 predict_proba 中的列号 (分类) 或期望值 (回归, 展开为 ±10% 的区间,
                target 为 0 时为 ±target_tolerance)
        kwargs: total_CFs, desired_class, desired_range, target_tolerance, features_to_vary, permitted_range
        """
        instance = self._prepare_instance(input_data)
        total_CFs = kwargs.get('total_CFs', self.total_CFs)
        goal = self._goal(target, kwargs)

        options = {
            'total_CFs': total_CFs,
            'features_to_vary': kwargs.get('features_to_vary', 'all'),
            'permitted_range': kwargs.get('permitted_range', None),
            'proximity_weight': self.proximity_weight,
            'diversity_weight': self.diversity_weight
        }
        options.update(goal)
        if self.method == 'random':
            options['random_seed'] = self.random_seed

        query = pd.DataFrame([instance], columns=self.feature_names)
        dice_exp = self.explainer.generate_counterfactuals(query, **options)
        counterfactuals = self._get_counterfactuals(dice_exp, instance)

        result = ExplanationResult(
            raw_result=dice_exp,
            counterfactuals=counterfactuals,
            metadata={
                'method': 'counterfactual',
                'scope': self.scope,
                'dice_method': self.method,
                'total_CFs': total_CFs,
                'desired_class': goal.get('desired_class'),
                'desired_range': goal.get('desired_range'),
                'instance': instance.tolist()
            }
        )
        result.metrics.update(self._summarize(counterfactuals, instance, goal))
        if counterfactuals:
            result.feature_importance = self._change_frequency(counterfactuals)
        return result

    def _goal(self, target: Optional[Any], kwargs: Dict[str, Any]) -> Dict[str, Any]:
        """把 target 与 desired_class/desired_range 合成 DiCE 的目标参数"""
        if self.task_type == 'classification':
            desired = kwargs.get('desired_class', self.desired_class)
            if target is not None:
                desired = int(target)
            return {'desired_class': desired}

        desired_range = kwargs.get('desired_range', self.desired_range)
        if target is not None:
            # target 为 0 时相对区间退化为一个点, 改用绝对容差
            margin = abs(target) * 0.1 if target != 0 else kwargs.get('target_tolerance', 0.1)
            desired_range = [target - margin, target + margin]
        if desired_range is None:
            raise ValueError("回归任务需要 desired_range 或 target")
        low, high = desired_range
        if low > high:
            raise ValueError(f"desired_range 下限大于上限: {desired_range}")
        return {'desired_range': [float(low), float(high)]}

    def _get_counterfactuals(self, dice_exp, instance: np.ndarray) -> List[Dict[str, Any]]:
        """DiCE结果 -> 反事实字典列表"""
        cf_df = dice_exp.cf_examples_list[0].final_cfs_df
        if cf_df is None or cf_df.empty:
            logger.warning("DiCE没有找到反事实样本")
            return []

        cf_matrix = cf_df[self.feature_names].to_numpy(dtype=float)
        predictions = self.model.predict(cf_matrix)
        probabilities = self.model.predict_proba(cf_matrix) if self.task_type == 'classification' else None

        # 与原样本逐元素比较, True 表示该特征被修改
        changed = ~np.isclose(cf_matrix, instance[np.newaxis, :])
        original = dict(zip(self.feature_names, instance.tolist()))

        counterfactuals = []
        for i, row in enumerate(cf_matrix):
            features = dict(zip(self.feature_names, row.tolist()))
            changes = {
                name: {
                    'original': original[name],
                    'counterfactual': features[name],
                    'change': features[name] - original[name]
                }
                for name, flag in zip(self.feature_names, changed[i]) if flag
            }
            counterfactuals.append({
                'features': features,
                'prediction': np.asarray(predictions[i]).item(),
                'probability': None if probabilities is None else probabilities[i].tolist(),
                'changes': changes,
                'distance': self._calculate_distance(original, features)
            })
        return counterfactuals

    def _calculate_distance(self, original: dict, counterfactual: dict) -> float:
        """按特征跨度归一化的L1距离, 跨度为0的特征按1处理"""
        total = 0.0
        for name in self.feature_names:
            span = self.feature_ranges_.get(name, 1.0) or 1.0
            total += abs(original[name] - counterfactual[name]) / span
        return total

    def _summarize(self, counterfactuals: List[Dict[str, Any]], instance: np.ndarray,
                   goal: Dict[str, Any]) -> Dict[str, float]:
        metrics = {'num_counterfactuals': len(counterfactuals)}
        if not counterfactuals:
            return metrics

        metrics['mean_distance'] = float(np.mean([cf['distance'] for cf in counterfactuals]))
        metrics['mean_changed_features'] = float(np.mean([len(cf['changes']) for cf in counterfactuals]))
        metrics['validity'] = float(np.mean([self._reaches_goal(cf, instance, goal)
                                             for cf in counterfactuals]))
        return metrics

    def _reaches_goal(self, cf: Dict[str, Any], instance: np.ndarray, goal: Dict[str, Any]) -> bool:
        if 'desired_range' in goal:
            low, high = goal['desired_range']
            return low <= cf['prediction'] <= high
        # desired_class 是 predict_proba 的列号, 与 classes_ 中的标签无关
        reached = int(np.argmax(cf['probability']))
        desired = goal['desired_class']
        if desired == 'opposite':
            return reached != int(np.argmax(self.model.predict_proba(instance.reshape(1, -1))[0]))
        return reached == int(desired)

    def _change_frequency(self, counterfactuals: List[Dict[str, Any]]) -> Dict[str, float]:
        """每个特征在反事实中被修改的比例"""
        counts = {name: 0 for name in self.feature_names}
        for cf in counterfactuals:
            for name in cf['changes']:
                counts[name] += 1
        return {name: count / len(counterfactuals) for name, count in counts.items()}

    def set_feature_ranges(self, feature_ranges: Dict[str, float]):
        """覆盖距离归一化使用的特征跨度"""
        self.feature_ranges_.update(feature_ranges)
