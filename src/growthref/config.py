"""
Configuration constants for the growth reference engine.
"""

from pathlib import Path

# Package paths
PACKAGE_ROOT = Path(__file__).parent
DATA_DIR = PACKAGE_ROOT / "data"

# Shipped reference tables, keyed by the name used for repository lookups
REFERENCE_TABLES = {
    "height": DATA_DIR / "height_lms.csv",
    "weight": DATA_DIR / "weight_lms.csv",
    "bmi": DATA_DIR / "bmi_lms.csv",
    "height_curve": DATA_DIR / "height_curve.csv",
}
IGF1_REFERENCE_TABLE = DATA_DIR / "igf1_roche_elecsys.csv"

# Time constants
DAYS_PER_YEAR = 365.25
MONTHS_PER_YEAR = 12

# LMS constants
L_ZERO_THRESHOLD = 0.01
LMS_FIELDS = ("L", "M", "S")
CURVE_FIELDS = ("P3", "P50", "P97")
CURVE_PERCENTILES = (3.0, 50.0, 97.0)

# Header aliases accepted when parsing reference tables
COLUMN_ALIASES = {
    "sex": "sex",
    "gender": "sex",
    "agemos": "agemos",
    "age_months": "agemos",
    "agemonths": "agemos",
}

# Accepted sex spellings -> canonical code
SEX_CODES = {
    "M": "M",
    "MALE": "M",
    "1": "M",
    "F": "F",
    "FEMALE": "F",
    "2": "F",
}
REQUIRED_SEXES = ("M", "F")

# IGF-1 reference constants
IGF1_LOW_PERCENTILE = 2.5
IGF1_HIGH_PERCENTILE = 97.5
# Age span (years) the IGF-1 band table must cover, [start, end)
IGF1_AGE_DOMAIN = (0.0, 20.0)
IGF1_PARAMETER_KEYWORDS = ("igf-1", "igf1", "somatomedin")
IGF1_UNIT_KEYWORDS = ("ng/ml", "ngml")

# Target height constants (cm)
MID_PARENTAL_SEX_OFFSET_CM = 13.0
PREDICTED_HEIGHT_OFFSET_CM = 2.0

# Number of most recent patient heights used for velocity
VELOCITY_WINDOW = 4
