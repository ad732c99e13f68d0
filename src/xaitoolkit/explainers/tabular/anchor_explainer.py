"""
Anchor解释器实现
搜索高精度的IF-THEN规则: 只要规则成立，模型预测几乎不变
"""

import numpy as np
from lime.discretize import DecileDiscretizer, QuartileDiscretizer
from scipy.stats import beta
from typing import Any, Dict, List, Optional, Tuple, Union
from xaitoolkit.core.explainer import BaseExplainer, ExplanationResult
from xaitoolkit.utils.validation import validate_numeric
import logging
import pandas as pd

logger = logging.getLogger(__name__)

DISCRETIZERS = {
    'quartile': QuartileDiscretizer,
    'decile': DecileDiscretizer
}


class AnchorExplainer(BaseExplainer):
    """
    Anchor解释器实现

    - 连续特征用lime的分位数离散器切分，谓词为 "特征落在样本所在的区间"
    - 束搜索逐轮增加一个谓词，采样估计规则精度并用Clopper-Pearson区间判定
    - 在满足精度阈值的最短规则中选择覆盖率最高的
    """

    def __init__(self,
                 model: Any,
                 task_type: str,
                 feature_names: Optional[List[str]] = None,
                 training_data: Optional[Union[np.ndarray, pd.DataFrame]] = None,
                 categorical_features: Optional[List[int]] = None,
                 **kwargs):
        """
        初始化Anchor解释器

        参数:
        model: 待解释的分类模型
        task_type: 任务类型 (只支持 'classification')
        feature_names: 特征名称列表
        training_data: 训练数据 (用于离散化、条件采样和覆盖率)
        categorical_features: 分类特征的索引列表
        kwargs:
          - threshold: 规则精度阈值
          - delta: 置信区间的显著性水平
          - beam_size: 每轮保留的候选规则数
          - batch_size: 每批采样数
          - max_samples: 每个候选规则的最大采样数
          - max_anchor_size: 规则最多包含的谓词数
          - coverage_samples: 估计覆盖率使用的训练样本数
          - discretizer: 'quartile' 或 'decile'
          - random_state: 随机种子
        """
        super().__init__(model, task_type, feature_names, **kwargs)

        if task_type != 'classification':
            raise ValueError("Anchor解释只支持分类任务")

        if training_data is None:
            if hasattr(model, 'X_train_'):
                training_data = model.X_train_
            else:
                raise ValueError("需要训练数据来初始化Anchor解释器")

        self.training_data = self._prepare_matrix(training_data)
        names = self._get_feature_names(self.training_data.shape[1])

        self.threshold = validate_numeric(kwargs.get('threshold', 0.95), 0.0, 1.0, 'threshold')
        self.delta = validate_numeric(kwargs.get('delta', 0.1), 0.0, 1.0, 'delta')
        self.beam_size = kwargs.get('beam_size', 2)
        self.batch_size = kwargs.get('batch_size', 100)
        self.max_samples = kwargs.get('max_samples', 1000)
        self.max_anchor_size = kwargs.get('max_anchor_size', None)
        self.coverage_samples = kwargs.get('coverage_samples', 1000)
        self.random_state = kwargs.get('random_state', 42)
        self.categorical_features = list(categorical_features or [])

        discretizer = kwargs.get('discretizer', 'quartile')
        if discretizer not in DISCRETIZERS:
            raise ValueError(f"不支持的离散化方法: {discretizer}，可用方法: {list(DISCRETIZERS)}")

        self.discretizer = DISCRETIZERS[discretizer](
            self.training_data,
            self.categorical_features,
            names,
            random_state=self.random_state
        )
        self.disc_train = self.discretizer.discretize(self.training_data)

        self.rng = np.random.RandomState(self.random_state)
        n_cover = min(self.coverage_samples, len(self.training_data))
        self.coverage_idx = self.rng.choice(len(self.training_data), n_cover, replace=False)

        logger.info(f"Anchor解释器初始化完成: threshold={self.threshold}, beam_size={self.beam_size}")

    def explain(self,
                input_data: Union[np.ndarray, list, pd.DataFrame],
                target: Optional[Any] = None,
                **kwargs) -> ExplanationResult:
        """
        为单个样本搜索Anchor规则

        参数:
        input_data: 输入数据 (单样本)
        target: 要锚定的类别在 predict_proba 中的列号 (默认为模型预测类别)
        kwargs:
          - threshold: 覆盖初始化的精度阈值
        """
        instance = self._prepare_instance(input_data)
        label = self._resolve_target(instance, target)
        threshold = kwargs.get('threshold', self.threshold)

        disc_instance = self.discretizer.discretize(instance.reshape(1, -1))[0]
        n_features = len(instance)
        max_size = min(self.max_anchor_size or n_features, n_features)

        beam: List[Tuple[int, ...]] = [()]
        best = None
        best_fallback = None
        for size in range(1, max_size + 1):
            candidates = sorted({
                tuple(sorted(anchor + (f,)))
                for anchor in beam
                for f in range(n_features)
                if f not in anchor
            })
            if not candidates:
                break

            evaluated = [
                self._evaluate_anchor(anchor, instance, disc_instance, label, threshold)
                for anchor in candidates
            ]
            evaluated.sort(key=lambda e: (e['precision'], e['coverage']), reverse=True)

            if best_fallback is None or evaluated[0]['precision'] > best_fallback['precision']:
                best_fallback = evaluated[0]

            accepted = [e for e in evaluated if e['accepted']]
            if accepted:
                best = max(accepted, key=lambda e: (e['coverage'], e['precision']))
                logger.debug(f"找到长度为 {size} 的Anchor: {best['anchor']}")
                break

            beam = [e['anchor'] for e in evaluated[:self.beam_size]]

        threshold_met = best is not None
        if best is None:
            logger.warning(f"没有规则达到精度阈值 {threshold}，返回精度最高的规则")
            best = best_fallback

        anchor = best['anchor']
        rules = [self._predicate_name(f, instance, disc_instance) for f in anchor]
        anchored_names = [self.feature_names[f] for f in anchor]

        result = ExplanationResult(
            raw_result=best,
            feature_importance={name: 1.0 for name in anchored_names},
            rules=rules,
            metrics={
                'precision': float(best['precision']),
                'precision_lower_bound': float(best['lower']),
                'coverage': float(best['coverage'])
            },
            metadata={
                'method': 'anchor',
                'scope': self.scope,
                'target_class': label,
                'target_label': self._class_label(label),
                'anchor_features': anchored_names,
                'threshold': threshold,
                'threshold_met': threshold_met,
                'num_samples': int(best['n']),
                'instance': instance.tolist()
            }
        )
        result.visualization = {
            'rule': " AND ".join(rules),
            'examples_covered': best['examples_covered'],
            'examples_flipped': best['examples_flipped'],
            'type': 'anchor'
        }
        return result

    def _evaluate_anchor(self,
                         anchor: Tuple[int, ...],
                         instance: np.ndarray,
                         disc_instance: np.ndarray,
                         label: int,
                         threshold: float) -> Dict[str, Any]:
        """分批采样估计规则精度，直到置信区间能判定是否达到阈值"""
        hits = 0
        n = 0
        covered, flipped = [], []
        lower, upper = 0.0, 1.0

        while n < self.max_samples:
            samples = self._sample(anchor, instance, disc_instance, self.batch_size)
            # label 是 predict_proba 的列号, 不一定等于 classes_ 中的标签
            predictions = np.argmax(self.model.predict_proba(samples), axis=1)
            agree = predictions == label

            hits += int(agree.sum())
            n += len(samples)
            covered.extend(samples[agree][:max(0, 5 - len(covered))].tolist())
            flipped.extend(samples[~agree][:max(0, 5 - len(flipped))].tolist())

            lower, upper = self._confidence_bounds(hits, n)
            if lower >= threshold or upper < threshold:
                break

        precision = hits / n
        return {
            'anchor': anchor,
            'precision': precision,
            'lower': lower,
            'upper': upper,
            'n': n,
            'coverage': self._coverage(anchor, disc_instance),
            'accepted': lower >= threshold or (n >= self.max_samples and precision >= threshold),
            'examples_covered': covered,
            'examples_flipped': flipped
        }

    def _confidence_bounds(self, hits: int, n: int) -> Tuple[float, float]:
        """Clopper-Pearson 置信区间"""
        alpha = self.delta
        lower = 0.0 if hits == 0 else float(beta.ppf(alpha / 2, hits, n - hits + 1))
        upper = 1.0 if hits == n else float(beta.ppf(1 - alpha / 2, hits + 1, n - hits))
        return lower, upper

    def _matches(self, anchor: Tuple[int, ...], disc_instance: np.ndarray,
                 rows: np.ndarray) -> np.ndarray:
        """返回离散化后的行是否满足规则中的全部谓词"""
        mask = np.ones(len(rows), dtype=bool)
        for f in anchor:
            mask &= rows[:, f] == disc_instance[f]
        return mask

    def _sample(self, anchor: Tuple[int, ...], instance: np.ndarray,
                disc_instance: np.ndarray, n: int) -> np.ndarray:
        """
        采样满足规则的扰动样本:
        非锚定特征取自随机训练样本，锚定特征整体取自满足规则的训练样本
        """
        samples = self.training_data[self.rng.randint(0, len(self.training_data), n)].copy()
        if not anchor:
            return samples

        columns = list(anchor)
        matching = np.where(self._matches(anchor, disc_instance, self.disc_train))[0]
        if len(matching) > 0:
            donors = self.training_data[self.rng.choice(matching, n)]
            samples[:, columns] = donors[:, columns]
        else:
            samples[:, columns] = instance[columns]
        return samples

    def _coverage(self, anchor: Tuple[int, ...], disc_instance: np.ndarray) -> float:
        rows = self.disc_train[self.coverage_idx]
        return float(self._matches(anchor, disc_instance, rows).mean())

    def _predicate_name(self, feature: int, instance: np.ndarray, disc_instance: np.ndarray) -> str:
        name = self.feature_names[feature]
        if feature in self.categorical_features:
            value = instance[feature]
            return f"{name} = {int(value) if float(value).is_integer() else value}"
        return self.discretizer.names[feature][int(disc_instance[feature])]

    def _class_label(self, index: int) -> Any:
        classes = getattr(self.model, 'classes_', None)
        if classes is None or not 0 <= index < len(classes):
            return index
        value = classes[index]
        return value.item() if hasattr(value, 'item') else value
