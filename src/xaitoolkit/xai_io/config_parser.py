"""
配置文件解析器
包内 default.yaml 作为底层, 用户的 YAML/JSON 文件逐层覆盖
"""

import copy
import os
import re
import logging
from typing import Any, Dict, Optional, Set

from xaitoolkit.xai_io.data_loader import DataLoader

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                                   'configs', 'default.yaml')

_PLACEHOLDER = re.compile(r'\$\{(\w+)\}')

_MISSING = object()


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    递归合并两个配置字典, override 中的值优先

    嵌套字典逐键合并, 其他类型 (包括列表) 整体替换, 两个输入都不会被修改
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigParser:
    """
    分层配置

    合并顺序: default.yaml -> base_config 链 -> 用户文件。
    字符串中的 ${name} 先查构造时传入的关键字变量, 再查环境变量,
    都没有时原样保留
    """

    def __init__(self,
                 config_path: Optional[str] = None,
                 env_vars: bool = True,
                 use_defaults: bool = True,
                 **kwargs):
        """
        参数:
        config_path: 用户配置文件 (None表示只使用默认配置)
        env_vars: 是否用环境变量替换占位符
        use_defaults: 是否以包内默认配置为底层
        kwargs: 占位符变量
        """
        self.config_path = config_path
        self.env_vars = env_vars
        self.use_defaults = use_defaults
        self.extra_vars = {key: str(value) for key, value in kwargs.items()}

        layers = []
        if use_defaults:
            layers.append(self._read(DEFAULT_CONFIG_PATH, set()))
        if config_path is not None:
            if not os.path.isfile(config_path):
                raise FileNotFoundError(f"配置文件不存在: {config_path}")
            layers.append(self._read(config_path, set()))
            logger.debug(f"已加载配置文件 {config_path}")

        merged = {}
        for layer in layers:
            merged = deep_merge(merged, layer)
        self.config = self._substitute(merged)

    def _read(self, path: str, seen: Set[str]) -> Dict[str, Any]:
        """读取一个文件, 递归合并它的 base_config (相对路径相对于该文件)"""
        real = os.path.realpath(path)
        if real in seen:
            raise ValueError(f"base_config 循环引用: {path}")
        seen.add(real)

        config = DataLoader.load(path)
        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ValueError(f"配置文件顶层必须是映射: {path}")

        base_path = config.pop('base_config', None)
        if base_path is None:
            return config
        if not os.path.isabs(base_path):
            base_path = os.path.join(os.path.dirname(path), base_path)
        return deep_merge(self._read(base_path, seen), config)

    def _lookup(self, match: 're.Match') -> str:
        name = match.group(1)
        if name in self.extra_vars:
            return self.extra_vars[name]
        if self.env_vars and name in os.environ:
            return os.environ[name]
        return match.group(0)

    def _substitute(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._substitute(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._substitute(v) for v in value]
        if isinstance(value, str):
            return _PLACEHOLDER.sub(self._lookup, value)
        return value

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """
        按点分隔路径取值, 例如 'explainers.lime.num_samples' 或 'evaluation.metrics.0'

        路径不存在时返回 default
        """
        current = self.config
        for part in key.split('.'):
            if isinstance(current, dict):
                current = current.get(part, _MISSING)
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                current = _MISSING
            if current is _MISSING:
                return default
        return current

    def get_section(self, section: str) -> Dict[str, Any]:
        """取一个配置节, 不存在或不是映射时返回空字典"""
        value = self.get(section)
        return value if isinstance(value, dict) else {}

    def update(self, updates: Dict[str, Any]):
        """
        按点分隔路径写入, 中间节点不存在 (或不是映射) 时新建

        参数:
        updates: {'explainers.lime.num_samples': 1000, ...}
        """
        for key, value in updates.items():
            *parents, leaf = key.split('.')
            node = self.config
            for part in parents:
                if not isinstance(node.get(part), dict):
                    node[part] = {}
                node = node[part]
            node[leaf] = value

    def save(self, output_path: str):
        """保存合并后的配置 (yaml/json, 由扩展名决定)"""
        DataLoader.save(self.config, output_path)

    def to_dict(self) -> Dict[str, Any]:
        return self.config

    @staticmethod
    def validate_config(config: Dict[str, Any], schema: Dict[str, Any]) -> bool:
        """
        检查顶层键是否存在且类型正确, 问题逐条记录为警告

        参数:
        config: 配置字典
        schema: {键: 期望类型}

        返回:
        没有问题时为True
        """
        problems = []
        for key, expected in schema.items():
            if key not in config:
                problems.append(f"缺少必需的配置项: {key}")
            elif not isinstance(config[key], expected):
                problems.append(f"配置项 {key} 应为 {expected.__name__}, 实际为 {type(config[key]).__name__}")
        for problem in problems:
            logger.warning(problem)
        return not problems
