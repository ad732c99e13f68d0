"""
静态图表生成器
创建各种静态图表可视化解释结果
"""

import matplotlib.pyplot as plt
import seaborn as sns
import numpy as np
import shap
from typing import Dict, List, Optional, Tuple
import logging
from io import BytesIO
import base64

from xaitoolkit.core.explainer import ExplanationResult
from xaitoolkit.utils.validation import validate_choice, validate_importance, validate_not_none

logger = logging.getLogger(__name__)

PLOT_TYPES = ['feature_importance', 'partial_dependence', 'shap_summary', 'counterfactuals']


class PlotGenerator:
    """
    静态图表生成器

    创建各种图表可视化解释结果
    """

    def __init__(self, style: str = 'whitegrid', palette: str = 'viridis'):
        """
        初始化图表生成器

        参数:
        style: seaborn样式 (whitegrid, darkgrid, white, dark, ticks)
        palette: seaborn调色板 (viridis, magma, plasma, inferno, cividis)
        """
        self.style = style
        self.palette = palette
        self.set_style()

    def set_style(self):
        """设置图表样式"""
        sns.set_style(self.style)
        sns.set_palette(self.palette)
        plt.rcParams['font.family'] = 'DejaVu Sans'
        plt.rcParams['axes.unicode_minus'] = False  # 正确显示负号

    def plot(self, result: ExplanationResult, plot_type: Optional[str] = None, **kwargs) -> plt.Figure:
        """
        按类型绘制解释结果

        参数:
        result: 解释结果
        plot_type: 图表类型 (None时根据 visualization['type'] 推断)
        """
        validate_not_none(result, "result")
        if plot_type is None:
            plot_type = self.infer_plot_type(result)
        validate_choice(plot_type, PLOT_TYPES, "plot_type")

        if plot_type == 'feature_importance':
            title = kwargs.pop('title', f"{result.metadata.get('method', 'Feature')} importance")
            return self.feature_importance(result.feature_importance, title=title, **kwargs)
        elif plot_type == 'partial_dependence':
            return self.partial_dependence(result, **kwargs)
        elif plot_type == 'shap_summary':
            return self.shap_summary(result, **kwargs)
        else:
            return self.counterfactual_changes(result, **kwargs)

    @staticmethod
    def infer_plot_type(result: ExplanationResult) -> str:
        """根据解释结果的内容推断图表类型"""
        vis_type = result.visualization.get('type') if isinstance(result.visualization, dict) else None
        if vis_type == 'pdp':
            return 'partial_dependence'
        if vis_type == 'shap_summary':
            return 'shap_summary'
        if result.counterfactuals:
            return 'counterfactuals'
        return 'feature_importance'

    def feature_importance(self,
                           importance: Dict[str, float],
                           title: str = 'Feature Importance',
                           top_n: Optional[int] = None,
                           figsize: Tuple[int, int] = (10, 6)) -> plt.Figure:
        """
        创建特征重要性条形图

        参数:
        importance: 特征重要性字典 {特征名: 重要性值}
        title: 图表标题
        top_n: 只显示前n个最重要的特征
        figsize: 图表大小

        返回:
        matplotlib Figure对象
        """
        validate_importance(importance)

        # 排序特征
        sorted_features = sorted(importance.items(), key=lambda x: abs(x[1]), reverse=True)

        # 选择前n个特征
        if top_n is not None and top_n > 0:
            sorted_features = sorted_features[:top_n]

        features, values = zip(*sorted_features)
        values = np.array(values, dtype=float)

        # 创建图表
        fig, ax = plt.subplots(figsize=figsize)
        colors = ['#3498db' if v >= 0 else '#e74c3c' for v in values]
        y_pos = np.arange(len(features))

        # 绘制条形图
        ax.barh(y_pos, values, align='center', color=colors)
        ax.set_yticks(y_pos)
        ax.set_yticklabels(features)
        ax.invert_yaxis()  # 最重要的特征在顶部
        ax.axvline(0, color='grey', lw=0.8)
        ax.set_xlabel('Importance Score')
        ax.set_title(title)

        # 添加数值标签
        for i, v in enumerate(values):
            ax.text(v, i, f" {v:.4f} ", va='center', ha='right' if v < 0 else 'left', fontsize=8)

        plt.tight_layout()
        return fig

    def partial_dependence(self,
                           result: ExplanationResult,
                           features: Optional[List[str]] = None,
                           max_ice_lines: int = 50,
                           n_cols: int = 3,
                           figsize_per_plot: Tuple[float, float] = (4, 3)) -> plt.Figure:
        """
        绘制PDP / ICE曲线 (每个单特征一个子图)

        参数:
        result: PartialDependenceExplainer 的解释结果
        features: 只绘制这些特征 (默认全部单特征曲线)
        max_ice_lines: 最多绘制的ICE曲线数
        n_cols: 每行子图数
        """
        validate_not_none(result, "result")
        curves = [c for c in result.visualization.get('curves', []) if isinstance(c['feature'], str)]
        if features is not None:
            curves = [c for c in curves if c['feature'] in features]
        if not curves:
            raise ValueError("结果中没有可绘制的单特征PDP曲线")

        n_cols = min(n_cols, len(curves))
        n_rows = int(np.ceil(len(curves) / n_cols))
        fig, axes = plt.subplots(n_rows, n_cols, squeeze=False,
                                 figsize=(figsize_per_plot[0] * n_cols, figsize_per_plot[1] * n_rows))

        for ax, curve in zip(axes.ravel(), curves):
            grid = np.asarray(curve['grid'], dtype=float)
            if curve.get('individual') is not None:
                individual = np.asarray(curve['individual'], dtype=float)
                for line in individual[:max_ice_lines]:
                    ax.plot(grid, line, color='#95a5a6', lw=0.5, alpha=0.5)
            if curve.get('average') is not None:
                ax.plot(grid, np.asarray(curve['average'], dtype=float), color='#e67e22', lw=2, label='PD')
            ax.set_xlabel(curve['feature'])
            ax.set_ylabel('Partial dependence')

        for ax in axes.ravel()[len(curves):]:
            ax.set_visible(False)

        fig.suptitle('Partial Dependence')
        plt.tight_layout()
        return fig

    def shap_summary(self,
                     result: ExplanationResult,
                     max_display: int = 20,
                     plot_type: Optional[str] = None) -> plt.Figure:
        """
        绘制SHAP摘要图 (shap.summary_plot)

        参数:
        result: SHAPExplainer.summarize 的解释结果
        max_display: 最多显示的特征数
        plot_type: 传给 shap.summary_plot 的类型 ('dot', 'bar', 'violin')
        """
        validate_not_none(result, "result")
        vis = result.visualization or {}
        if 'shap_values' not in vis:
            raise ValueError("结果中没有SHAP值矩阵, 请使用 SHAPExplainer.summarize")

        shap_values = np.asarray(vis['shap_values'], dtype=float)
        data = np.asarray(vis['data'], dtype=float)

        plt.figure()
        shap.summary_plot(shap_values, data,
                          feature_names=vis.get('feature_names'),
                          max_display=max_display,
                          plot_type=plot_type,
                          show=False)
        fig = plt.gcf()
        plt.tight_layout()
        return fig

    def counterfactual_changes(self,
                               result: ExplanationResult,
                               figsize: Tuple[int, int] = (10, 6)) -> plt.Figure:
        """
        绘制反事实相对原始输入的特征变化热力图

        参数:
        result: CounterfactualExplainer 的解释结果
        """
        validate_not_none(result, "result")
        if not result.counterfactuals:
            raise ValueError("结果中没有反事实样本")

        features = list(result.counterfactuals[0]['features'].keys())
        changes = np.array([
            [cf['changes'].get(f, {}).get('change', 0.0) for f in features]
            for cf in result.counterfactuals
        ], dtype=float)
        labels = [f"CF {i + 1} ({cf['prediction']})" for i, cf in enumerate(result.counterfactuals)]

        fig, ax = plt.subplots(figsize=figsize)
        limit = np.abs(changes).max() or 1.0
        sns.heatmap(changes, annot=True, fmt='.2f', cmap='coolwarm', center=0,
                    vmin=-limit, vmax=limit,
                    xticklabels=features, yticklabels=labels, ax=ax)
        ax.set_xlabel('Feature')
        ax.set_title('Counterfactual changes')
        plt.tight_layout()
        return fig

    def to_base64(self, fig: plt.Figure, format: str = 'png') -> str:
        """
        将图表转换为Base64编码的字符串

        参数:
        fig: matplotlib图表对象
        format: 图像格式 (png, jpg, svg)

        返回:
        Base64编码的图像字符串
        """
        validate_not_none(fig, "fig")

        buffer = BytesIO()
        fig.savefig(buffer, format=format, bbox_inches='tight')
        plt.close(fig)  # 关闭图表释放内存
        buffer.seek(0)

        base64_str = base64.b64encode(buffer.read()).decode('utf-8')
        return f"data:image/{format};base64,{base64_str}"

    def to_html(self, fig: plt.Figure) -> str:
        """将图表转换为HTML img标签"""
        return f'<img src="{self.to_base64(fig)}" alt="Chart">'
