"""
模型加载工具
从磁盘读取待解释的模型, 并检查其是否提供解释器需要的预测接口
"""

import os
import pickle
import joblib
from typing import Any, Dict, Optional
import logging

from xaitoolkit.utils.validation import validate_file_path

logger = logging.getLogger(__name__)

# 扩展名 -> 框架
EXTENSIONS = {
    '.pkl': 'sklearn',
    '.pickle': 'sklearn',
    '.joblib': 'sklearn',
    '.pt': 'pytorch',
    '.pth': 'pytorch'
}


class ModelLoader:
    """统一模型加载接口"""

    @staticmethod
    def load(model_path: str,
             framework: Optional[str] = None,
             **kwargs) -> Any:
        """
        加载模型

        参数:
        model_path: 模型文件路径
        framework: 'sklearn' (pickle/joblib) 或 'pytorch', 默认自动检测
        kwargs:
          - device: PyTorch模型加载到的设备
          - model_arch: 文件只含state_dict时用于构造模型的可调用对象

        返回:
        加载的模型对象
        """
        validate_file_path(model_path, must_exist=True, name="model path")

        framework = framework or ModelLoader.detect_framework(model_path)
        loader = getattr(ModelLoader, f"_load_{framework}", None)
        if loader is None:
            raise ValueError(f"不支持的框架: {framework} (支持 sklearn, pytorch)")

        model = loader(model_path, **kwargs)
        if framework == 'sklearn' and not hasattr(model, 'predict'):
            raise TypeError(f"{model_path} 中的对象没有 predict 方法: {type(model).__name__}")

        logger.info(f"已加载 {framework} 模型 {type(model).__name__}: {model_path}")
        return model

    @staticmethod
    def detect_framework(model_path: str) -> str:
        """按扩展名判断框架, 没有已知扩展名时读取文件头"""
        ext = os.path.splitext(model_path)[1].lower()
        if ext in EXTENSIONS:
            return EXTENSIONS[ext]

        with open(model_path, 'rb') as f:
            header = f.read(2)
        # pickle 协议2以上以0x80开头, torch.save 写出ZIP归档
        if header[:1] == b'\x80':
            return 'sklearn'
        if header == b'PK':
            return 'pytorch'
        raise RuntimeError(f"无法推断模型框架: {model_path}")

    @staticmethod
    def _load_sklearn(model_path: str, **kwargs) -> Any:
        if model_path.endswith('.joblib'):
            return joblib.load(model_path)
        with open(model_path, 'rb') as f:
            return pickle.load(f)

    @staticmethod
    def _load_pytorch(model_path: str, **kwargs) -> Any:
        import torch

        device = torch.device(kwargs.get('device', 'cpu'))
        obj = torch.load(model_path, map_location=device, weights_only=False)

        if not isinstance(obj, torch.nn.Module):
            model_arch = kwargs.get('model_arch')
            if model_arch is None:
                raise ValueError("文件中是state_dict, 需要提供model_arch参数")
            module = model_arch()
            module.load_state_dict(obj)
            obj = module.to(device)

        obj.eval()
        return obj

    @staticmethod
    def inspect(model: Any) -> Dict[str, Any]:
        """
        汇总模型的预测接口信息

        返回:
        字典, 包含 name, has_predict_proba, n_features (未知为None),
        classes (非分类器为None) 和推测的 task_type
        """
        has_proba = hasattr(model, 'predict_proba')
        classes = getattr(model, 'classes_', None)
        n_features = getattr(model, 'n_features_in_', None)

        return {
            'name': type(model).__name__,
            'has_predict_proba': has_proba,
            'n_features': None if n_features is None else int(n_features),
            'classes': None if classes is None else [c.item() if hasattr(c, 'item') else c for c in classes],
            'task_type': 'classification' if has_proba or classes is not None else 'regression'
        }

    @staticmethod
    def save(model: Any, model_path: str, **kwargs):
        """保存模型, .pt/.pth 用torch, .pkl/.pickle 用pickle, 其余用joblib"""
        framework = EXTENSIONS.get(os.path.splitext(model_path)[1].lower())
        if framework == 'pytorch':
            import torch
            torch.save(model, model_path)
        elif model_path.endswith(('.pkl', '.pickle')):
            with open(model_path, 'wb') as f:
                pickle.dump(model, f)
        else:
            joblib.dump(model, model_path, **kwargs)
        logger.info(f"模型已保存到 {model_path}")
