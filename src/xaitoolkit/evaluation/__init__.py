from .fidelity import FidelityEvaluator
from .stability import StabilityEvaluator

__all__ = ['FidelityEvaluator', 'StabilityEvaluator']
