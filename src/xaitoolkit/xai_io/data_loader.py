"""
数据加载器
读写解释器使用的表格数据、配置和中间结果
"""

import os
import numpy as np
import pandas as pd
import json
import pickle
import logging
import yaml
from typing import Any, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

# 扩展名 -> 格式
FORMATS = {
    '.csv': 'csv',
    '.tsv': 'tsv',
    '.json': 'json',
    '.pkl': 'pickle',
    '.pickle': 'pickle',
    '.npy': 'numpy',
    '.npz': 'npz',
    '.txt': 'text',
    '.yaml': 'yaml',
    '.yml': 'yaml'
}


class DataLoader:
    """
    通用数据加载器

    按扩展名分派到 _load_<格式> / _save_<格式>，
    load_table 额外负责把表格拆成特征矩阵和标签
    """

    @staticmethod
    def load(file_path: str,
             format: Optional[str] = None,
             **kwargs) -> Union[np.ndarray, pd.DataFrame, dict, list, Any]:
        """
        加载数据文件

        参数:
        file_path: 文件路径
        format: 文件格式 (默认由扩展名决定)
        kwargs: 传给具体加载函数的参数

        返回:
        加载的数据对象
        """
        format = format or DataLoader._detect_format(file_path)
        loader = getattr(DataLoader, f"_load_{format}", None)
        if loader is None:
            raise ValueError(f"不支持的格式: {format}")
        return loader(file_path, **kwargs)

    @staticmethod
    def _detect_format(file_path: str) -> str:
        ext = os.path.splitext(file_path)[1].lower()
        if ext not in FORMATS:
            raise ValueError(f"无法识别的文件格式: {file_path} (支持 {sorted(FORMATS)})")
        return FORMATS[ext]

    @staticmethod
    def _load_csv(file_path: str, **kwargs) -> pd.DataFrame:
        return pd.read_csv(file_path, **kwargs)

    @staticmethod
    def _load_tsv(file_path: str, **kwargs) -> pd.DataFrame:
        kwargs.setdefault('sep', '\t')
        return pd.read_csv(file_path, **kwargs)

    @staticmethod
    def _load_json(file_path: str, **kwargs) -> Union[dict, list]:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f, **kwargs)

    @staticmethod
    def _load_pickle(file_path: str, **kwargs) -> Any:
        with open(file_path, 'rb') as f:
            return pickle.load(f, **kwargs)

    @staticmethod
    def _load_numpy(file_path: str, **kwargs) -> np.ndarray:
        return np.load(file_path, **kwargs)

    @staticmethod
    def _load_npz(file_path: str, **kwargs) -> dict:
        with np.load(file_path, **kwargs) as archive:
            return {key: archive[key] for key in archive.files}

    @staticmethod
    def _load_text(file_path: str, **kwargs) -> str:
        with open(file_path, 'r', encoding=kwargs.get('encoding', 'utf-8')) as f:
            return f.read()

    @staticmethod
    def _load_yaml(file_path: str, **kwargs) -> dict:
        with open(file_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    @staticmethod
    def load_table(file_path: str,
                   label_column: Optional[str] = None,
                   feature_columns: Optional[Sequence[str]] = None,
                   dropna: bool = False,
                   **kwargs) -> Tuple[pd.DataFrame, Optional[pd.Series]]:
        """
        加载表格数据并拆分特征与标签

        参数:
        file_path: 数据文件路径 (csv/tsv/json记录/npy/pickle)
        label_column: 标签列名 (None表示没有标签)
        feature_columns: 只保留这些特征列 (默认除标签外的全部列)
        dropna: 是否丢弃含缺失值的行

        返回:
        (特征DataFrame, 标签Series或None)
        """
        data = DataLoader.load(file_path, **kwargs)
        data = DataLoader._as_frame(data)

        if label_column is not None and label_column not in data.columns:
            raise ValueError(f"数据中没有标签列: {label_column}")

        if dropna:
            before = len(data)
            data = data.dropna().reset_index(drop=True)
            if len(data) < before:
                logger.warning(f"{file_path}: 丢弃了 {before - len(data)} 行含缺失值的数据")

        labels = None
        if label_column is not None:
            labels = data[label_column]
            data = data.drop(columns=[label_column])

        if feature_columns is not None:
            missing = [c for c in feature_columns if c not in data.columns]
            if missing:
                raise ValueError(f"数据中没有特征列: {missing}")
            data = data[list(feature_columns)]

        non_numeric = [c for c in data.columns if not pd.api.types.is_numeric_dtype(data[c])]
        if non_numeric:
            raise ValueError(f"特征列必须是数值类型, 请先编码: {non_numeric}")

        logger.debug(f"加载表格 {file_path}: {data.shape[0]} 行, {data.shape[1]} 列")
        return data, labels

    @staticmethod
    def _as_frame(data: Any) -> pd.DataFrame:
        """数组、记录列表或字典统一转换为DataFrame"""
        if isinstance(data, pd.DataFrame):
            return data
        if isinstance(data, np.ndarray):
            matrix = np.atleast_2d(data)
            return pd.DataFrame(matrix, columns=[f'feature_{i}' for i in range(matrix.shape[1])])
        return pd.DataFrame(data)

    @staticmethod
    def save(data: Any, file_path: str, **kwargs):
        """
        保存数据到文件 (格式由扩展名决定)

        参数:
        data: 要保存的数据
        file_path: 文件路径
        kwargs: 格式特定参数
        """
        format = DataLoader._detect_format(file_path)
        saver = getattr(DataLoader, f"_save_{format}", None)
        if saver is None:
            raise ValueError(f"不支持的保存格式: {format}")
        saver(data, file_path, **kwargs)

    @staticmethod
    def _save_csv(data: Any, file_path: str, **kwargs):
        DataLoader._as_frame(data).to_csv(file_path, index=False, **kwargs)

    @staticmethod
    def _save_tsv(data: Any, file_path: str, **kwargs):
        DataLoader._as_frame(data).to_csv(file_path, sep='\t', index=False, **kwargs)

    @staticmethod
    def _save_json(data: Union[dict, list], file_path: str, **kwargs):
        indent = kwargs.pop('indent', 4)
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=indent, ensure_ascii=False, **kwargs)

    @staticmethod
    def _save_pickle(data: Any, file_path: str, **kwargs):
        with open(file_path, 'wb') as f:
            pickle.dump(data, f, **kwargs)

    @staticmethod
    def _save_numpy(data: np.ndarray, file_path: str, **kwargs):
        np.save(file_path, np.asarray(data), **kwargs)

    @staticmethod
    def _save_npz(data: dict, file_path: str, **kwargs):
        np.savez(file_path, **data)

    @staticmethod
    def _save_text(data: str, file_path: str, **kwargs):
        with open(file_path, 'w', encoding=kwargs.get('encoding', 'utf-8')) as f:
            f.write(data)

    @staticmethod
    def _save_yaml(data: dict, file_path: str, **kwargs):
        with open(file_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False, **kwargs)

    @staticmethod
    def batch_load(file_paths: List[str], **kwargs) -> List[Any]:
        """
        批量加载多个文件

        返回:
        加载的数据列表 (加载失败的位置为None)
        """
        results = []
        for file_path in file_paths:
            try:
                results.append(DataLoader.load(file_path, **kwargs))
            except (OSError, ValueError) as e:
                logger.error(f"加载文件 {file_path} 失败: {str(e)}")
                results.append(None)
        return results
