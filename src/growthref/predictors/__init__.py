"""
Adult height predictor strategies.

Every BaseHeightPredictor subclass imported here is picked up by name, so
TargetHeightCalculator(method="offset") resolves without a hand-kept table.
"""

from typing import Dict, Type

from .base import BaseHeightPredictor, PredictionContext

# Strategy modules must be imported before the registry is built
from .offset import predictor as offset_predictor


def _build_registry() -> Dict[str, Type[BaseHeightPredictor]]:
    strategies = {}
    for cls in BaseHeightPredictor.__subclasses__():
        # OffsetPredictor -> 'offset'
        strategies[cls.__name__.replace("Predictor", "").lower()] = cls
    return strategies


registry = _build_registry()

__all__ = ["registry", "BaseHeightPredictor", "PredictionContext", "offset_predictor"]
