"""
IGF-1 reference ranges and approximate percentiles.

Reference intervals are age-banded (Roche Elecsys pediatric intervals, ng/mL).
The percentile is an approximation: each band is taken to span the 2.5th to
97.5th percentile and values inside it are placed by linear interpolation.
It is not an LMS-derived IGF-1 SDS, and enriched results say so through
``percentile_method``.
"""

import logging
import math
import threading
from pathlib import Path
from typing import Any, Iterable, List, NamedTuple, Optional, Tuple, Union

import pandas as pd
from pydantic import (
    BaseModel,
    ConfigDict,
    StrictFloat,
    ValidationError,
    field_validator,
    model_validator,
)

from .calculations import calculate_age_in_years, is_valid_age
from .config import (
    IGF1_AGE_DOMAIN,
    IGF1_HIGH_PERCENTILE,
    IGF1_LOW_PERCENTILE,
    IGF1_PARAMETER_KEYWORDS,
    IGF1_REFERENCE_TABLE,
    IGF1_UNIT_KEYWORDS,
)
from .models import EnrichedLabResult, LabResult, Patient, normalize_sex
from .standards import ConfigurationError

logger = logging.getLogger(__name__)

PERCENTILE_METHOD = "band-linear-approximation"


class HormoneReferenceBand(BaseModel):
    """
    Reference interval for one age band, per sex.
    """

    model_config = ConfigDict(allow_inf_nan=False)

    min_age: StrictFloat
    max_age: StrictFloat
    male_low: StrictFloat
    male_high: StrictFloat
    female_low: StrictFloat
    female_high: StrictFloat

    @field_validator("max_age", mode="after")
    @classmethod
    def min_age_lt_max_age(cls, v: float, info: Any) -> float:
        """Validate that min_age < max_age."""
        if info.data.get("min_age", float("inf")) >= v:
            raise ValueError("min_age must be < max_age")
        return v

    @field_validator("male_high", "female_high", mode="after")
    @classmethod
    def low_lt_high(cls, v: float, info: Any) -> float:
        """Validate that low < high for each sex."""
        low_field = info.field_name.replace("_high", "_low")
        if info.data.get(low_field, float("inf")) >= v:
            raise ValueError(f"{low_field} must be < {info.field_name}")
        return v

    def limits(self, sex: str) -> "ReferenceRange":
        if sex == "M":
            return ReferenceRange(self.male_low, self.male_high)
        return ReferenceRange(self.female_low, self.female_high)


class HormoneBandTable(BaseModel):
    """
    Contiguous, non-overlapping age bands.

    When age_domain is set, the bands must cover exactly [start, end).
    """

    analyte: str = "IGF-1"
    unit: str = "ng/mL"
    bands: List[HormoneReferenceBand]
    age_domain: Optional[Tuple[float, float]] = None

    @field_validator("bands", mode="after")
    @classmethod
    def contiguous_bands(cls, v: List[HormoneReferenceBand]) -> List[HormoneReferenceBand]:
        if not v:
            raise ValueError("At least one reference band required")
        ordered = sorted(v, key=lambda b: b.min_age)
        for prev, nxt in zip(ordered, ordered[1:]):
            if prev.max_age > nxt.min_age:
                raise ValueError(
                    f"Overlapping bands [{prev.min_age}, {prev.max_age}) and [{nxt.min_age}, {nxt.max_age})"
                )
            if prev.max_age < nxt.min_age:
                raise ValueError(f"Gap between {prev.max_age} and {nxt.min_age} years")
        return ordered

    @model_validator(mode="after")
    def covers_age_domain(self) -> "HormoneBandTable":
        if self.age_domain is None:
            return self
        start, end = self.age_domain
        first, last = self.bands[0], self.bands[-1]
        if first.min_age != start or last.max_age != end:
            raise ValueError(
                f"Bands cover [{first.min_age}, {last.max_age}) but must cover [{start}, {end})"
            )
        return self


class ReferenceRange(NamedTuple):
    low: float
    high: float


def load_band_table(
    source: Union[str, Path] = IGF1_REFERENCE_TABLE,
    age_domain: Optional[Tuple[float, float]] = IGF1_AGE_DOMAIN,
) -> HormoneBandTable:
    """
    Load and validate an IGF-1 band table from CSV.

    Unlike growth tables, a band table is all-or-nothing: a bad band would
    leave a hole in the age domain.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If any band is malformed, overlapping or leaves a gap,
            or the bands do not span age_domain (pass None to skip that check).
    """
    try:
        df = pd.read_csv(source)
    except FileNotFoundError:
        raise FileNotFoundError(f"Hormone reference table not found at {source}") from None
    df.columns = [str(c).strip().lower() for c in df.columns]
    try:
        bands = [
            HormoneReferenceBand(**{k: float(v) for k, v in rec.items()})
            for rec in df.to_dict("records")
        ]
        table = HormoneBandTable(bands=bands, age_domain=age_domain)
    except (ValidationError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid hormone reference table {source}: {e}") from e
    logger.info(f"Loaded {len(table.bands)} IGF-1 reference bands from {source}")
    return table


_DEFAULT_TABLE: Optional[HormoneBandTable] = None
_TABLE_LOCK = threading.Lock()


def get_default_band_table() -> HormoneBandTable:
    global _DEFAULT_TABLE
    if _DEFAULT_TABLE is None:
        with _TABLE_LOCK:
            if _DEFAULT_TABLE is None:
                _DEFAULT_TABLE = load_band_table()
    return _DEFAULT_TABLE


class HormoneReferenceEngine:
    """
    Age/sex reference ranges and band-linear percentiles for IGF-1.

    Usage:
        engine = HormoneReferenceEngine()
        engine.reference_range(12.5, "M")      # ReferenceRange(low=85.0, high=550.0)
        engine.percentile(450, 12.5, "M")      # ~77.1
        engine.enrich_all(labs, patient)
    """

    APPROXIMATION_NOTE = (
        "Approximate percentile: the reference interval is assumed to span the "
        "2.5th-97.5th percentiles with linear interpolation inside it. "
        "Not an LMS-based IGF-1 SDS."
    )

    def __init__(self, table: Optional[HormoneBandTable] = None) -> None:
        self.table = table if table is not None else get_default_band_table()

    @staticmethod
    def is_target_parameter(name: Optional[str]) -> bool:
        value = (name or "").lower()
        return any(keyword in value for keyword in IGF1_PARAMETER_KEYWORDS)

    @staticmethod
    def is_compatible_unit(unit: Optional[str]) -> bool:
        value = "".join((unit or "").lower().split())
        return any(keyword in value for keyword in IGF1_UNIT_KEYWORDS)

    def find_band(self, age_years: Optional[float]) -> Optional[HormoneReferenceBand]:
        if not is_valid_age(age_years):
            return None
        for band in self.table.bands:
            if band.min_age <= age_years < band.max_age:
                return band
        return None

    def reference_range(self, age_years: Optional[float], sex: str) -> Optional[ReferenceRange]:
        code = normalize_sex(sex)
        if code is None:
            return None
        band = self.find_band(age_years)
        if band is None:
            return None
        return band.limits(code)

    def percentile(self, value: Optional[float], age_years: Optional[float], sex: str) -> Optional[float]:
        """
        Approximate percentile of value within the age/sex band.

        value <= low gives 2.5 and value >= high gives 97.5; in between the
        position is linear: 2.5 + (value - low) / (high - low) * 95.
        """
        if value is None or not math.isfinite(value):
            return None
        limits = self.reference_range(age_years, sex)
        if limits is None:
            return None
        low, high = limits
        if value <= low:
            return IGF1_LOW_PERCENTILE
        if value >= high:
            return IGF1_HIGH_PERCENTILE
        span = IGF1_HIGH_PERCENTILE - IGF1_LOW_PERCENTILE
        result = IGF1_LOW_PERCENTILE + (value - low) / (high - low) * span
        return max(IGF1_LOW_PERCENTILE, min(IGF1_HIGH_PERCENTILE, result))

    def enrich(self, lab: LabResult, patient: Patient) -> EnrichedLabResult:
        """
        Attach reference fields to one lab result.

        Labs that are not IGF-1 pass through unchanged. For IGF-1 results in a
        unit other than ng/mL, unit_match is False and no range or percentile
        is computed. Lab and patient may be models or plain dicts.
        """
        lab = LabResult.model_validate(lab)
        patient = Patient.model_validate(patient)
        base = lab.model_dump()
        if not self.is_target_parameter(lab.parameter):
            return EnrichedLabResult(**base)

        age = lab.age_at_draw
        if age is None:
            age = calculate_age_in_years(patient.dob, lab.date)
        base["age_at_draw"] = age

        unit_ok = self.is_compatible_unit(lab.unit)
        limits = self.reference_range(age, patient.sex) if unit_ok else None
        percentile = self.percentile(lab.value, age, patient.sex) if unit_ok else None
        if not unit_ok:
            logger.info(
                f"IGF-1 result for patient {lab.patient_id} in unit {lab.unit!r} "
                "is not ng/mL; reference not applied"
            )
        return EnrichedLabResult(
            **base,
            is_target=True,
            reference_low=limits.low if limits else None,
            reference_high=limits.high if limits else None,
            percentile=percentile,
            unit_match=unit_ok,
            percentile_method=PERCENTILE_METHOD if percentile is not None else None,
        )

    def enrich_all(self, labs: Iterable[LabResult], patient: Patient) -> List[EnrichedLabResult]:
        patient = Patient.model_validate(patient)
        return [self.enrich(lab, patient) for lab in labs]
