from typing import Optional

from pydantic import BaseModel, StrictFloat, ValidationError, field_validator

from ..base import BaseHeightPredictor, PredictionContext
from ...config import PREDICTED_HEIGHT_OFFSET_CM


class OffsetConfig(BaseModel):
    """
    Configuration for the offset heuristic.
    """

    offset_cm: StrictFloat = PREDICTED_HEIGHT_OFFSET_CM

    @field_validator("offset_cm", mode="after")
    @classmethod
    def plausible_offset(cls, v: float) -> float:
        if not -30.0 <= v <= 30.0:
            raise ValueError("offset_cm must be within +/-30 cm")
        return v


class OffsetPredictor(BaseHeightPredictor):
    """
    Placeholder projection: mid-parental height minus a fixed offset.

    Stands in until a bone-age based model is available; it ignores height,
    bone age and velocity.
    """

    def __init__(self, offset_cm: float = PREDICTED_HEIGHT_OFFSET_CM) -> None:
        try:
            self.config = OffsetConfig(offset_cm=offset_cm)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e
        self.validate_config()

    def validate_config(self) -> None:
        if not isinstance(self.config, OffsetConfig):
            raise ValueError("OffsetPredictor requires an OffsetConfig")

    def predict(self, context: PredictionContext) -> Optional[float]:
        if context.mid_parental_height is None:
            return None
        return context.mid_parental_height - self.config.offset_cm
