"""
Base predictor class for adult height projections.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

from ..models import Sex


class PredictionContext(BaseModel):
    """
    Inputs available to a height predictor.

    Only sex and mid_parental_height are guaranteed; model-driven predictors
    (e.g. bone-age adjusted projections) read the optional fields and return
    None when what they need is missing.
    """

    sex: Sex
    mid_parental_height: Optional[float] = None
    height: Optional[float] = None
    age_years: Optional[float] = None
    bone_age: Optional[float] = None
    growth_velocity: Optional[float] = None


class BaseHeightPredictor(ABC):
    """
    Abstract base class for predicted adult height strategies.

    Each strategy should inherit from this class and implement `predict` and
    `validate_config`. TargetHeightCalculator only talks to this interface, so
    strategies can be swapped without touching callers.

    Example subclass implementation:
        class BoneAgePredictor(BaseHeightPredictor):
            def validate_config(self) -> None:
                pass

            def predict(self, context: PredictionContext) -> Optional[float]:
                if context.height is None or context.bone_age is None:
                    return None
                ...
    """

    @abstractmethod
    def predict(self, context: PredictionContext) -> Optional[float]:
        """
        Predict adult height in cm.

        Args:
            context: Patient inputs for the projection.

        Returns:
            Predicted adult height, or None if the inputs do not allow one.
        """
        pass

    @abstractmethod
    def validate_config(self) -> None:
        """
        Validate strategy-specific configuration.

        Raises:
            ValueError: If configuration is invalid.
        """
        pass

    @property
    def name(self) -> str:
        return type(self).__name__.replace("Predictor", "").lower()
