"""
Growth timeline: population standard curves merged with a patient's own
measurements into a single age-ordered series for charting and trend work.
"""

import logging
from typing import Any, Iterable, List, Optional, Sequence

import pandas as pd
from scipy import stats

from .calculations import calculate_age_in_years, is_valid_age
from .config import CURVE_PERCENTILES, MONTHS_PER_YEAR, VELOCITY_WINDOW
from .models import CurvePoint, GrowthSeriesPoint, LMSRow, Measurement
from .standards import StandardsIndex
from .zscores import lms_value

logger = logging.getLogger(__name__)

SERIES_COLUMNS = [
    "age",
    "origin",
    "percentile3",
    "percentile50",
    "percentile97",
    "height",
    "weight",
    "bone_age",
    "date",
]


def standard_points_from_curve(index: StandardsIndex, sex: str) -> List[GrowthSeriesPoint]:
    """Standard series points from a P3/P50/P97 curve table, one per row."""
    points = []
    for row in index.rows(sex):
        if not isinstance(row, CurvePoint):
            raise TypeError(f"Table '{index.name}' is not a percentile curve table")
        points.append(
            GrowthSeriesPoint(
                age=row.age_years,
                origin="standard",
                percentile3=row.P3,
                percentile50=row.P50,
                percentile97=row.P97,
            )
        )
    return points


def standard_points_from_lms(
    index: StandardsIndex,
    sex: str,
    percentiles: Sequence[float] = CURVE_PERCENTILES,
) -> List[GrowthSeriesPoint]:
    """
    Standard series points computed from an LMS table.

    Each row gives the values at the 3rd, 50th and 97th percentiles through
    the inverse LMS transform. Rows are used as-is, no interpolation.
    """
    if len(percentiles) != 3:
        raise ValueError("Exactly three percentiles (low, median, high) are required")
    z_values = [float(stats.norm.ppf(p / 100.0)) for p in percentiles]

    points = []
    for row in index.rows(sex):
        if not isinstance(row, LMSRow):
            raise TypeError(f"Table '{index.name}' does not hold LMS coefficients")
        low, mid, high = (lms_value(z, row) for z in z_values)
        points.append(
            GrowthSeriesPoint(
                age=round(row.agemos / MONTHS_PER_YEAR, 2),
                origin="standard",
                percentile3=low,
                percentile50=mid,
                percentile97=high,
            )
        )
    return points


def patient_points(measurements: Iterable[Measurement], dob: Any) -> List[GrowthSeriesPoint]:
    """
    Patient series points from raw measurements.

    Age comes from the measurement or is derived from the date of birth and
    rounded to 2 decimals. Measurements dated before birth, or carrying a
    negative or non-finite age, are dropped. Heights and weights of 0 become
    None. Measurements may be models or plain dicts.
    """
    points = []
    for record in measurements:
        m = Measurement.model_validate(record)
        age = m.age_years
        if age is None:
            age = calculate_age_in_years(dob, m.date)
        if not is_valid_age(age):
            logger.warning(
                f"Dropping measurement dated {m.date}: no valid age "
                f"(age {age}, date of birth {dob})"
            )
            continue
        points.append(
            GrowthSeriesPoint(
                age=round(age, 2),
                origin="patient",
                height=m.height,
                weight=m.weight,
                bone_age=m.bone_age,
                date=m.date,
            )
        )
    return points


class GrowthTimelineMerger:
    """
    Merge standard-curve points with patient points.

    The result is a new list sorted by age. The sort is stable and standard
    points go in first, so at equal ages the standard entry precedes the
    patient entry; both are kept.
    """

    def merge(
        self,
        standard_points: Iterable[GrowthSeriesPoint],
        patient_points: Iterable[GrowthSeriesPoint],
    ) -> List[GrowthSeriesPoint]:
        standard = list(standard_points)
        patient = list(patient_points)
        if any(p.origin != "standard" for p in standard):
            raise ValueError("standard_points must all have origin 'standard'")
        if any(p.origin != "patient" for p in patient):
            raise ValueError("patient_points must all have origin 'patient'")
        return sorted(standard + patient, key=lambda p: p.age)


def build_growth_series(
    curve: StandardsIndex,
    sex: str,
    measurements: Iterable[Measurement],
    dob: Any,
) -> List[GrowthSeriesPoint]:
    """Merged series for one patient, from a curve table or an LMS table."""
    if curve.kind == "lms":
        standard = standard_points_from_lms(curve, sex)
    else:
        standard = standard_points_from_curve(curve, sex)
    return GrowthTimelineMerger().merge(standard, patient_points(measurements, dob))


def series_to_frame(series: Iterable[GrowthSeriesPoint]) -> pd.DataFrame:
    """
    Series as a DataFrame for charting.

    Returns
    -------
    pd.DataFrame
        One row per point with SERIES_COLUMNS plus a boolean 'is_patient';
        absent values are NaN
    """
    records = [p.model_dump() for p in series]
    df = pd.DataFrame.from_records(records, columns=SERIES_COLUMNS)
    df["is_patient"] = df["origin"] == "patient"
    return df


def height_velocity(
    points: Iterable[GrowthSeriesPoint], window: int = VELOCITY_WINDOW
) -> Optional[float]:
    """
    Height velocity in cm/year over the most recent patient heights.

    Uses the first and last of the latest `window` measured heights. Returns
    None with fewer than two heights or a non-positive age span.
    """
    if window < 2:
        raise ValueError("window must be at least 2")
    measured = sorted(
        (p for p in points if p.is_patient and p.height is not None),
        key=lambda p: p.age,
    )
    if len(measured) < 2:
        return None
    recent = measured[-window:]
    first, last = recent[0], recent[-1]
    span = last.age - first.age
    if span <= 0:
        return None
    return (last.height - first.height) / span
