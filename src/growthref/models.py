"""
Record and result models shared by the growth reference engines.

Input records (measurements, lab results, patients) mirror what the external
record store hands over. Derived records are frozen so a merged series or an
enriched lab list can be shared by several consumers without copying.
"""

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import MONTHS_PER_YEAR, SEX_CODES

Sex = Literal["M", "F"]


def normalize_sex(value: Any) -> Optional[str]:
    """
    Map a free-form sex value to 'M' or 'F'.

    Accepts M/F, Male/Female (any case) and the table codes 1/2.
    Returns None for anything else.
    """
    if value is None:
        return None
    return SEX_CODES.get(str(value).strip().upper())


def _zero_as_missing(v: Optional[float]) -> Optional[float]:
    # 0 is not a physiological reading; it means "not measured"
    if v is None or v == 0:
        return None
    return v


class LMSRow(BaseModel):
    """LMS coefficients for one (sex, age in months) cell."""

    model_config = ConfigDict(frozen=True)

    sex: Sex
    agemos: int = Field(ge=0)
    L: float
    M: float = Field(gt=0)
    S: float = Field(gt=0)


class CurvePoint(BaseModel):
    """Simplified growth curve row: 3rd/50th/97th percentile values."""

    model_config = ConfigDict(frozen=True)

    sex: Sex
    agemos: int = Field(ge=0)
    P3: float
    P50: float
    P97: float

    @property
    def age_years(self) -> float:
        return round(self.agemos / MONTHS_PER_YEAR, 2)


class Patient(BaseModel):
    patient_id: str
    dob: dt.date
    sex: str
    height_father: Optional[float] = None
    height_mother: Optional[float] = None


class Measurement(BaseModel):
    """A clinical visit measurement. Read-only input."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    date: dt.date
    age_years: Optional[float] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    bone_age: Optional[float] = None


class EnrichedMeasurement(Measurement):
    height_percentile: Optional[float] = None
    weight_percentile: Optional[float] = None
    bmi: Optional[float] = None
    bmi_percentile: Optional[float] = None


class LabResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_id: str
    date: dt.date
    parameter: str
    value: float
    unit: str = ""
    age_at_draw: Optional[float] = None


class EnrichedLabResult(LabResult):
    """
    Lab result with derived reference fields.

    reference_low/high, percentile and unit_match are computed, never
    authoritative. percentile_method names how the percentile was obtained so
    report text can say it is an approximation.
    """

    is_target: bool = False
    reference_low: Optional[float] = None
    reference_high: Optional[float] = None
    percentile: Optional[float] = None
    unit_match: Optional[bool] = None
    percentile_method: Optional[str] = None


class GrowthSeriesPoint(BaseModel):
    """
    One entry of a merged growth series.

    Standard points carry percentile3/50/97, patient points carry the
    height/weight/bone_age sample. Points at the same age are kept as separate
    entries so the origin of every field stays unambiguous.
    """

    model_config = ConfigDict(frozen=True)

    age: float
    origin: Literal["standard", "patient"]
    percentile3: Optional[float] = None
    percentile50: Optional[float] = None
    percentile97: Optional[float] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    bone_age: Optional[float] = None
    date: Optional[dt.date] = None

    @field_validator("height", "weight", mode="after")
    @classmethod
    def zero_is_not_measured(cls, v: Optional[float]) -> Optional[float]:
        return _zero_as_missing(v)

    @property
    def is_patient(self) -> bool:
        return self.origin == "patient"


class TargetHeightResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    mid_parental_height: Optional[float] = None
    predicted_adult_height: Optional[float] = None
    method: str
