"""
结果写入器
把解释结果、评估字典和图表写到磁盘, 格式由扩展名决定
"""

import os
import html
import json
import pickle
import logging
from typing import Any, List, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from xaitoolkit.core.explainer import ExplanationResult
from xaitoolkit.xai_io.data_loader import DataLoader

logger = logging.getLogger(__name__)

# 扩展名 -> 写入格式
OUTPUT_FORMATS = {
    '.json': 'json',
    '.yaml': 'yaml',
    '.yml': 'yaml',
    '.csv': 'csv',
    '.html': 'html',
    '.htm': 'html',
    '.txt': 'text',
    '.png': 'figure',
    '.jpg': 'figure',
    '.jpeg': 'figure',
    '.svg': 'figure',
    '.pdf': 'figure',
    '.pkl': 'pickle',
    '.pickle': 'pickle'
}


def to_records(result: Any) -> Any:
    """ExplanationResult (及其列表/字典) 转换为可JSON序列化的结构, raw_result 被丢弃"""
    if isinstance(result, ExplanationResult):
        return result.to_dict()
    if isinstance(result, (list, tuple)):
        return [to_records(item) for item in result]
    if isinstance(result, dict):
        return {k: to_records(v) for k, v in result.items()}
    return ExplanationResult.to_serializable(result)


def to_frame(result: Any) -> pd.DataFrame:
    """
    把结果排成表格

    单个 ExplanationResult: 每个特征一行 (feature, importance);
    ExplanationResult 列表: 每个结果一行, 第一列是 method, 其后每个特征一列;
    DataFrame/数组/字典/字典列表 直接构造
    """
    if isinstance(result, ExplanationResult):
        return pd.DataFrame(list(result.feature_importance.items()), columns=['feature', 'importance'])
    if isinstance(result, list) and result and all(isinstance(r, ExplanationResult) for r in result):
        frame = pd.DataFrame([r.feature_importance for r in result])
        frame.insert(0, 'method', [r.metadata.get('method') for r in result])
        return frame
    if isinstance(result, pd.DataFrame):
        return result
    if isinstance(result, np.ndarray):
        return pd.DataFrame(result)
    if isinstance(result, dict):
        return pd.DataFrame([result])
    if isinstance(result, list) and all(isinstance(item, dict) for item in result):
        return pd.DataFrame(result)
    raise ValueError(f"无法转换为表格: {type(result).__name__}")


class ResultWriter:
    """按扩展名分派到 _write_<格式>"""

    @staticmethod
    def write(result: Any, output_path: str, format: Optional[str] = None, **kwargs) -> str:
        """
        写入结果, 必要时创建上级目录

        参数:
        result: ExplanationResult, 其列表, 字典, DataFrame 或 matplotlib Figure
        output_path: 输出文件路径
        format: 覆盖按扩展名推断的格式
        kwargs: 传给具体写入函数

        返回:
        写入的路径
        """
        if format is None:
            ext = os.path.splitext(output_path)[1].lower()
            if ext not in OUTPUT_FORMATS:
                raise ValueError(f"无法识别的输出格式: {output_path} (支持 {sorted(OUTPUT_FORMATS)})")
            format = OUTPUT_FORMATS[ext]
        writer = getattr(ResultWriter, f"_write_{format}", None)
        if writer is None:
            raise ValueError(f"不支持的输出格式: {format}")

        out_dir = os.path.dirname(output_path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)

        writer(result, output_path, **kwargs)
        logger.info(f"结果已写入 {output_path}")
        return output_path

    @staticmethod
    def _write_json(result: Any, output_path: str, **kwargs):
        kwargs.setdefault('indent', 4)
        kwargs.setdefault('default', str)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(to_records(result), f, ensure_ascii=False, **kwargs)

    @staticmethod
    def _write_yaml(result: Any, output_path: str, **kwargs):
        DataLoader.save(to_records(result), output_path, **kwargs)

    @staticmethod
    def _write_csv(result: Any, output_path: str, **kwargs):
        to_frame(result).to_csv(output_path, index=False, **kwargs)

    @staticmethod
    def _write_html(result: Any, output_path: str, **kwargs):
        """lime 等自带HTML的结果原样写出, 其余渲染为特征表"""
        if isinstance(result, str):
            content = result
        elif isinstance(result, dict) and 'html' in result:
            content = result['html']
        elif isinstance(result, ExplanationResult):
            own = result.visualization.get('html') if isinstance(result.visualization, dict) else None
            content = own or ResultWriter._render_html(result)
        else:
            raise ValueError("HTML输出需要 ExplanationResult, 含 'html' 的字典或字符串")

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(content)

    @staticmethod
    def _render_html(result: ExplanationResult) -> str:
        method = html.escape(str(result.metadata.get('method', 'explanation')))
        rows = "\n".join(
            f"<tr><td>{html.escape(name)}</td><td>{value:.6f}</td></tr>"
            for name, value in result.top_features()
        )
        parts = [
            f"<html><head><meta charset=\"utf-8\"><title>{method}</title></head><body>",
            f"<h1>{method}</h1>",
            f"<table><tr><th>feature</th><th>importance</th></tr>\n{rows}\n</table>"
        ]
        if result.rules:
            parts.append(f"<p>IF {html.escape(' AND '.join(result.rules))}</p>")
        if result.metrics:
            items = "\n".join(f"<li>{html.escape(k)}: {v}</li>" for k, v in result.metrics.items())
            parts.append(f"<ul>\n{items}\n</ul>")
        parts.append("</body></html>")
        return "\n".join(parts)

    @staticmethod
    def _write_text(result: Any, output_path: str, **kwargs):
        lines = result if isinstance(result, list) else [result]
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write("\n".join(str(line) for line in lines))

    @staticmethod
    def _write_figure(result: Any, output_path: str, **kwargs):
        """保存并关闭 matplotlib 图表"""
        if not isinstance(result, plt.Figure):
            raise ValueError(f"图像格式需要matplotlib Figure, 得到 {type(result).__name__}")
        kwargs.setdefault('bbox_inches', 'tight')
        result.savefig(output_path, **kwargs)
        plt.close(result)

    @staticmethod
    def _write_pickle(result: Any, output_path: str, **kwargs):
        with open(output_path, 'wb') as f:
            pickle.dump(result, f, **kwargs)

    @staticmethod
    def batch_write(results: List[Any], output_paths: List[str], **kwargs) -> List[str]:
        """
        逐个写入, 单个失败只记录错误

        返回:
        成功写入的路径列表
        """
        if len(results) != len(output_paths):
            raise ValueError("结果列表和输出路径列表长度必须相同")

        written = []
        for result, path in zip(results, output_paths):
            try:
                written.append(ResultWriter.write(result, path, **kwargs))
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"写入文件 {path} 失败: {str(e)}")
        return written
