"""
growthref: age- and sex-normalized growth and hormone reference calculations
for pediatric endocrinology.
"""

from .hormones import HormoneReferenceEngine, ReferenceRange
from .models import (
    CurvePoint,
    EnrichedLabResult,
    EnrichedMeasurement,
    GrowthSeriesPoint,
    LabResult,
    LMSRow,
    Measurement,
    Patient,
    TargetHeightResult,
    normalize_sex,
)
from .standards import (
    ConfigurationError,
    StandardsIndex,
    StandardsRepository,
    get_default_repository,
    load_reference_table,
)
from .target_height import TargetHeightCalculator, mid_parental_height
from .timeline import GrowthTimelineMerger, build_growth_series, height_velocity
from .zscores import PercentileEngine, enrich_measurements, normal_cdf

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "CurvePoint",
    "EnrichedLabResult",
    "EnrichedMeasurement",
    "GrowthSeriesPoint",
    "GrowthTimelineMerger",
    "HormoneReferenceEngine",
    "LabResult",
    "LMSRow",
    "Measurement",
    "Patient",
    "PercentileEngine",
    "ReferenceRange",
    "StandardsIndex",
    "StandardsRepository",
    "TargetHeightCalculator",
    "TargetHeightResult",
    "build_growth_series",
    "enrich_measurements",
    "get_default_repository",
    "height_velocity",
    "load_reference_table",
    "mid_parental_height",
    "normal_cdf",
]
