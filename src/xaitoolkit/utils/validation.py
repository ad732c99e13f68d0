"""
输入验证工具
解释器参数、表格数据和文件路径的检查
"""
import os

import numpy as np
from typing import Any, Dict, List, Optional, Sequence, Union


class ValidationError(ValueError):
    """参数或数据不满足解释器要求"""
    pass


def validate_not_none(value: Any, name: str = "value") -> Any:
    """值不能为None"""
    if value is None:
        raise ValidationError(f"{name} 不能为 None")
    return value


def validate_type(value: Any, expected_type: Union[type, tuple], name: str = "value") -> Any:
    """值必须是指定类型"""
    if not isinstance(value, expected_type):
        expected = getattr(expected_type, '__name__', str(expected_type))
        raise ValidationError(f"{name} 的类型应为 {expected}, 实际为 {type(value).__name__}")
    return value


def validate_numeric(value: Union[int, float],
                     min_val: Optional[float] = None,
                     max_val: Optional[float] = None,
                     name: str = "value") -> Union[int, float]:
    """
    验证数值在闭区间 [min_val, max_val] 内

    参数:
    value: 要验证的数值
    min_val: 下界 (None表示不限制)
    max_val: 上界 (None表示不限制)
    name: 参数名 (用于错误消息)

    返回:
    原值
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        raise ValidationError(f"{name} 必须是数值, 实际为 {type(value).__name__}")
    if min_val is not None and value < min_val:
        raise ValidationError(f"{name} 必须 >= {min_val}, 实际为 {value}")
    if max_val is not None and value > max_val:
        raise ValidationError(f"{name} 必须 <= {max_val}, 实际为 {value}")
    return value


def validate_array(arr: np.ndarray,
                   ndim: Optional[int] = None,
                   n_features: Optional[int] = None,
                   allow_nan: bool = False,
                   name: str = "array") -> np.ndarray:
    """
    验证表格数组

    参数:
    arr: 数组
    ndim: 期望的维数
    n_features: 期望的列数 (最后一维)
    allow_nan: 是否允许缺失值
    name: 数组名 (用于错误消息)

    返回:
    原数组
    """
    if not isinstance(arr, np.ndarray):
        raise ValidationError(f"{name} 必须是 NumPy 数组, 实际为 {type(arr).__name__}")
    if ndim is not None and arr.ndim != ndim:
        raise ValidationError(f"{name} 应为 {ndim} 维, 实际为 {arr.ndim} 维 (形状 {arr.shape})")
    if n_features is not None and arr.shape[-1] != n_features:
        raise ValidationError(f"{name} 应有 {n_features} 列, 实际为 {arr.shape[-1]} 列")
    if not allow_nan and np.issubdtype(arr.dtype, np.floating) and np.isnan(arr).any():
        raise ValidationError(f"{name} 含有缺失值 (NaN)")
    return arr


def validate_feature_names(names: Sequence[str], n_features: int) -> List[str]:
    """特征名数量必须与列数一致且不重复"""
    names = [str(n) for n in names]
    if len(names) != n_features:
        raise ValidationError(f"特征名数量 ({len(names)}) 与数据列数 ({n_features}) 不一致")
    duplicated = sorted({n for n in names if names.count(n) > 1})
    if duplicated:
        raise ValidationError(f"特征名重复: {duplicated}")
    return names


def validate_importance(importance: Dict[str, float], name: str = "importance") -> Dict[str, float]:
    """特征重要性必须是非空的 {特征名: 有限数值} 字典"""
    validate_type(importance, dict, name)
    if not importance:
        raise ValidationError(f"{name} 为空")
    values = np.asarray(list(importance.values()), dtype=float)
    if not np.isfinite(values).all():
        raise ValidationError(f"{name} 含有非有限值")
    return importance


def validate_file_path(path: str,
                       must_exist: bool = False,
                       extensions: Optional[Sequence[str]] = None,
                       name: str = "file path") -> str:
    """
    验证文件路径

    参数:
    path: 文件路径
    must_exist: 文件是否必须存在
    extensions: 允许的扩展名 (None表示不限制)
    name: 路径名称 (用于错误消息)
    """
    if not isinstance(path, (str, os.PathLike)):
        raise ValidationError(f"{name} 必须是路径字符串, 实际为 {type(path).__name__}")
    path = os.fspath(path)

    if must_exist and not os.path.isfile(path):
        raise ValidationError(f"{name} 不存在: {path}")

    if extensions is not None:
        ext = os.path.splitext(path)[1].lower()
        if ext not in [e.lower() for e in extensions]:
            raise ValidationError(f"{name} 的扩展名应为 {list(extensions)}, 实际为 '{ext}'")

    return path


def validate_choice(value: Any, choices: Sequence[Any], name: str = "value") -> Any:
    """值必须在允许的选项中"""
    if value not in choices:
        raise ValidationError(f"{name} 必须是 [{', '.join(str(c) for c in choices)}] 之一, 实际为 {value}")
    return value
