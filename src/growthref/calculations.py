"""
Utility functions for age and body-mass calculations.
"""

import math
from typing import Any, Optional

import pandas as pd

from .config import DAYS_PER_YEAR


def _to_day(value: Any) -> Optional[pd.Timestamp]:
    """Parse a date-like value to a midnight Timestamp, or None if unparseable."""
    if value is None:
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.normalize()


def calculate_age_in_years(dob: Any, when: Any) -> Optional[float]:
    """
    Age in years between a birth date and an event date.

    Parameters
    ----------
    dob : date-like
        Date of birth (date, datetime, Timestamp or ISO string)
    when : date-like
        Date of the measurement or blood draw

    Returns
    -------
    float or None
        Whole-day difference divided by 365.25, or None when either date is
        unparseable or the event precedes birth

    Notes
    -----
    Time of day is discarded before differencing, so the result only
    depends on calendar days.
    """
    birth = _to_day(dob)
    event = _to_day(when)
    if birth is None or event is None:
        return None
    days = (event - birth).days
    if days < 0:
        return None
    return days / DAYS_PER_YEAR


def is_valid_age(age_years: Optional[float]) -> bool:
    return age_years is not None and math.isfinite(age_years) and age_years >= 0


def calculate_bmi(height_cm: Optional[float], weight_kg: Optional[float]) -> Optional[float]:
    """
    Calculate BMI from height in centimetres and weight in kilograms.

    Parameters
    ----------
    height_cm : float
        Height in cm
    weight_kg : float
        Weight in kg

    Returns
    -------
    float or None
        BMI (kg/m^2) rounded to 2 decimals, or None if inputs are missing,
        zero or non-finite
    """
    if height_cm is None or weight_kg is None:
        return None
    if not (math.isfinite(height_cm) and math.isfinite(weight_kg)):
        return None
    if height_cm <= 0 or weight_kg <= 0:
        return None
    return round(weight_kg / (height_cm / 100.0) ** 2, 2)
