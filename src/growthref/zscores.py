"""
Z-Score and Percentile Calculation for Growth Measurements

This module converts anthropometric values into age- and sex-specific
z-scores and percentiles using LMS reference tables. Includes the LMS
transform, its inverse, a closed-form normal CDF, and per-measurement
enrichment (height percentile, BMI, BMI percentile).
"""

import logging
import math
from typing import Iterable, List, Optional, Sequence

import numpy as np
from numba import jit
from scipy import stats

from .calculations import calculate_age_in_years, calculate_bmi, is_valid_age
from .config import L_ZERO_THRESHOLD
from .models import EnrichedMeasurement, LMSRow, Measurement, Patient, normalize_sex
from .standards import StandardsRepository, get_default_repository

logger = logging.getLogger(__name__)

# Zelen & Severo (1964) rational approximation, Abramowitz & Stegun 26.2.17
CDF_P = 0.2316419
CDF_B1 = 0.319381530
CDF_B2 = -0.356563782
CDF_B3 = 1.781477937
CDF_B4 = -1.821255978
CDF_B5 = 1.330274429
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)


@jit(nopython=True, cache=True)
def lms_zscore(
    X: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Calculate LMS z-scores for 1-D arrays of values and coefficients.

    Implements the LMS method from Cole (1990):

    For |L| >= 0.01: z = ((X/M)^L - 1) / (L * S)
    For |L| <  0.01: z = ln(X/M) / S

    Entries with a non-finite or non-positive X, M or S get NaN, so rows with
    no reference coefficients (NaN L/M/S) fall through as NaN.

    References:
    - Cole, T.J. (1990). "The LMS method for constructing normalized growth standards."
      European Journal of Clinical Nutrition, 44(1), 45-60.

    Args:
        X: Observed values (cm, kg/m^2)
        L: Lambda (Box-Cox power)
        M: Mu (median)
        S: Sigma (coefficient of variation)

    Returns:
        Z-scores, NaN where not computable
    """
    n = X.shape[0]
    z = np.full(n, np.nan)
    for i in range(n):
        x = X[i]
        lv = L[i]
        mv = M[i]
        sv = S[i]
        if not (np.isfinite(x) and np.isfinite(lv) and np.isfinite(mv) and np.isfinite(sv)):
            continue
        if x <= 0.0 or mv <= 0.0 or sv <= 0.0:
            continue
        if abs(lv) < L_ZERO_THRESHOLD:
            z[i] = np.log(x / mv) / sv
        else:
            z[i] = ((x / mv) ** lv - 1.0) / (lv * sv)
    return z


def normal_cdf(x):
    """
    Standard normal CDF via the Zelen & Severo polynomial.

    Absolute error is below 7.5e-8 everywhere. Accepts a scalar (returns a
    float) or an array (returns an array); NaN propagates.
    """
    x = np.asarray(x, dtype=np.float64)
    t = 1.0 / (1.0 + CDF_P * np.abs(x))
    poly = ((((CDF_B5 * t + CDF_B4) * t + CDF_B3) * t + CDF_B2) * t + CDF_B1) * t
    upper = 1.0 - poly * np.exp(-x * x / 2.0) * _INV_SQRT_2PI
    result = np.where(x < 0, 1.0 - upper, upper)
    if result.ndim == 0:
        return float(result)
    return result


def zscore(value: float, row: LMSRow) -> float:
    """LMS z-score of a single value against one table row (NaN if invalid)."""
    if value is None or not math.isfinite(value) or value <= 0:
        return float("nan")
    if abs(row.L) < L_ZERO_THRESHOLD:
        return math.log(value / row.M) / row.S
    try:
        power = (value / row.M) ** row.L
    except OverflowError:
        # (X/M)^L is +inf; z takes the sign of L, as in the batch kernel
        return math.copysign(math.inf, row.L)
    return (power - 1.0) / (row.L * row.S)


def lms_value(z: float, row: LMSRow) -> float:
    """
    Inverse LMS: the measurement sitting at z-score z.

    Formula: M * (1 + L*S*z)^(1/L), or M * exp(S*z) when L is near zero.
    """
    if abs(row.L) < L_ZERO_THRESHOLD:
        return row.M * math.exp(row.S * z)
    base = 1.0 + row.L * row.S * z
    if base <= 0:
        return float("nan")
    return row.M * base ** (1.0 / row.L)


class PercentileEngine:
    """
    Percentiles for one LMS table ('height' or 'bmi').

    Lookups are exact-month matches; an age with no table row yields None
    rather than a guessed value.
    """

    def __init__(
        self, table: str = "height", repository: Optional[StandardsRepository] = None
    ) -> None:
        self.table = table
        self.repository = repository or get_default_repository()

    def lookup(self, sex: str, age_years: Optional[float]) -> Optional[LMSRow]:
        if normalize_sex(sex) is None or not is_valid_age(age_years):
            return None
        row = self.repository.lookup(self.table, sex, age_years)
        if row is not None and not isinstance(row, LMSRow):
            raise TypeError(f"Table '{self.table}' does not hold LMS coefficients")
        return row

    @staticmethod
    def zscore(value: float, row: LMSRow) -> float:
        return zscore(value, row)

    def percentile(self, value: Optional[float], age_years: Optional[float], sex: str) -> Optional[float]:
        """
        Percentile (0-100) of a value for the given age and sex.

        Returns None when the value is missing, zero or non-finite, the sex is
        unknown, or the table has no row for the age.
        """
        if value is None or not math.isfinite(value) or value <= 0:
            return None
        row = self.lookup(sex, age_years)
        if row is None:
            return None
        return normal_cdf(zscore(value, row)) * 100.0

    def percentiles(
        self,
        values: Sequence[float],
        ages_years: Sequence[float],
        sexes: Sequence[str],
    ) -> np.ndarray:
        """
        Batch percentiles; NaN wherever a single-value call would give None.

        Args:
            values: Measurements
            ages_years: Ages in years
            sexes: Sex per entry

        Returns:
            Array of percentiles, same length as values
        """
        X = np.asarray(values, dtype=np.float64)
        n = X.shape[0]
        if not (len(ages_years) == n and len(sexes) == n):
            raise ValueError("values, ages_years and sexes must have the same length")

        L = np.full(n, np.nan)
        M = np.full(n, np.nan)
        S = np.full(n, np.nan)
        for i, (age, sex) in enumerate(zip(ages_years, sexes)):
            row = self.lookup(sex, age)
            if row is not None:
                L[i], M[i], S[i] = row.L, row.M, row.S

        z = lms_zscore(X, L, M, S)
        return np.where(np.isnan(z), np.nan, normal_cdf(np.nan_to_num(z)) * 100.0)

    def value_at_percentile(
        self, percentile: float, age_years: Optional[float], sex: str
    ) -> Optional[float]:
        """Measurement at a given percentile (0 < percentile < 100), or None."""
        if not 0 < percentile < 100:
            raise ValueError(f"percentile must be in (0, 100), got {percentile}")
        row = self.lookup(sex, age_years)
        if row is None:
            return None
        value = lms_value(float(stats.norm.ppf(percentile / 100.0)), row)
        return None if math.isnan(value) else value


def enrich_measurements(
    measurements: Iterable[Measurement],
    patient: Patient,
    repository: Optional[StandardsRepository] = None,
) -> List[EnrichedMeasurement]:
    """
    Add height, weight and BMI percentiles (plus BMI) to each measurement.

    Measurements and the patient may be models or plain dicts. Age is taken
    from the measurement when given, otherwise derived from the patient's
    date of birth. Zero heights/weights count as not measured.
    Missing reference data leaves the corresponding field None.
    """
    patient = Patient.model_validate(patient)
    repository = repository or get_default_repository()
    height_engine = PercentileEngine("height", repository)
    weight_engine = PercentileEngine("weight", repository)
    bmi_engine = PercentileEngine("bmi", repository)

    enriched = []
    for record in measurements:
        m = Measurement.model_validate(record)
        age = m.age_years
        if age is None:
            age = calculate_age_in_years(patient.dob, m.date)
        height = m.height or None
        weight = m.weight or None
        bmi = calculate_bmi(height, weight)

        if not is_valid_age(age):
            age = None
            logger.warning(
                f"Measurement on {m.date} has no valid age (precedes date of birth for patient "
                f"{patient.patient_id}); percentiles skipped"
            )

        enriched.append(
            EnrichedMeasurement(
                **m.model_dump(exclude={"age_years", "height", "weight"}),
                age_years=age,
                height=height,
                weight=weight,
                height_percentile=height_engine.percentile(height, age, patient.sex),
                weight_percentile=weight_engine.percentile(weight, age, patient.sex),
                bmi=bmi,
                bmi_percentile=bmi_engine.percentile(bmi, age, patient.sex),
            )
        )
    return enriched
