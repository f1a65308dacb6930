"""
Genetic target height and predicted adult height.
"""

import math
from typing import Optional

from .config import MID_PARENTAL_SEX_OFFSET_CM
from .models import Measurement, Patient, TargetHeightResult, normalize_sex
from .calculations import calculate_age_in_years
from .predictors import BaseHeightPredictor, PredictionContext, registry


def _valid_height(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def mid_parental_height(
    father_cm: Optional[float], mother_cm: Optional[float], sex: str
) -> Optional[float]:
    """
    Mid-parental (target) height in cm.

    Male: (father + mother + 13) / 2. Female: (father + mother - 13) / 2.
    Returns None when either parent height is missing or invalid, or the sex
    is unknown; a missing parent is never read as 0.
    """
    code = normalize_sex(sex)
    if code is None or not (_valid_height(father_cm) and _valid_height(mother_cm)):
        return None
    offset = MID_PARENTAL_SEX_OFFSET_CM if code == "M" else -MID_PARENTAL_SEX_OFFSET_CM
    return (father_cm + mother_cm + offset) / 2


class TargetHeightCalculator:
    """
    Mid-parental height plus a pluggable predicted adult height.

    Args:
        predictor: Strategy instance, or None for the registered default.
        method: Registry name used when predictor is None.
    """

    def __init__(
        self, predictor: Optional[BaseHeightPredictor] = None, method: str = "offset"
    ) -> None:
        if predictor is None:
            if method not in registry:
                raise KeyError(f"Unknown height predictor '{method}'. Available: {sorted(registry)}")
            predictor = registry[method]()
        self.predictor = predictor

    @staticmethod
    def mid_parental_height(
        father_cm: Optional[float], mother_cm: Optional[float], sex: str
    ) -> Optional[float]:
        return mid_parental_height(father_cm, mother_cm, sex)

    def predicted_adult_height(
        self,
        father_cm: Optional[float],
        mother_cm: Optional[float],
        sex: str,
        height: Optional[float] = None,
        age_years: Optional[float] = None,
        bone_age: Optional[float] = None,
        growth_velocity: Optional[float] = None,
    ) -> Optional[float]:
        code = normalize_sex(sex)
        if code is None:
            return None
        context = PredictionContext(
            sex=code,
            mid_parental_height=mid_parental_height(father_cm, mother_cm, code),
            height=height,
            age_years=age_years,
            bone_age=bone_age,
            growth_velocity=growth_velocity,
        )
        return self.predictor.predict(context)

    def calculate(
        self,
        patient: Patient,
        latest: Optional[Measurement] = None,
        growth_velocity: Optional[float] = None,
    ) -> TargetHeightResult:
        """
        Target and predicted adult height for a patient.

        The latest measurement, when given, supplies current height, age and
        bone age to the predictor. Patient and measurement may be models or
        plain dicts.
        """
        patient = Patient.model_validate(patient)
        height = age = bone_age = None
        if latest is not None:
            latest = Measurement.model_validate(latest)
            height = latest.height or None
            bone_age = latest.bone_age
            age = latest.age_years
            if age is None:
                age = calculate_age_in_years(patient.dob, latest.date)

        return TargetHeightResult(
            mid_parental_height=mid_parental_height(
                patient.height_father, patient.height_mother, patient.sex
            ),
            predicted_adult_height=self.predicted_adult_height(
                patient.height_father,
                patient.height_mother,
                patient.sex,
                height=height,
                age_years=age,
                bone_age=bone_age,
                growth_velocity=growth_velocity,
            ),
            method=self.predictor.name,
        )
