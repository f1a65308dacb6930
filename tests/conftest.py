import datetime as dt
from pathlib import Path

import pytest

from growthref.models import Measurement, Patient
from growthref.standards import StandardsRepository


def _write(path: Path, content: str) -> Path:
    path.write_text(content.strip() + "\n")
    return path


@pytest.fixture
def lms_csv(tmp_path: Path) -> Path:
    """Small LMS table: ages 0, 12, 60 months for both sexes."""
    return _write(
        tmp_path / "height_lms.csv",
        """
sex,agemos,L,M,S
1,0,0.3487,49.99,0.0379
1,12,0.5,76.1,0.0301
1,60,0.2204,109.2,0.0432
2,0,0.3809,49.29,0.0386
2,12,0.0,74.6,0.0315
2,60,0.0696,108.4,0.0449
""",
    )


@pytest.fixture
def bmi_csv(tmp_path: Path) -> Path:
    return _write(
        tmp_path / "bmi_lms.csv",
        """
sex,agemos,L,M,S
1,60,-1.6315,15.34,0.0885
2,60,-1.2959,15.17,0.0942
""",
    )


@pytest.fixture
def weight_csv(tmp_path: Path) -> Path:
    return _write(
        tmp_path / "weight_lms.csv",
        """
sex,agemos,L,M,S
1,60,-0.7159,18.62,0.1441
2,60,-0.6602,18.48,0.1522
""",
    )


@pytest.fixture
def curve_csv(tmp_path: Path) -> Path:
    return _write(
        tmp_path / "height_curve.csv",
        """
sex,agemos,P3,P50,P97
1,0,46.3,49.9,53.4
1,12,71.0,75.7,80.5
1,24,81.4,87.1,92.9
2,0,45.6,49.1,52.7
2,12,69.2,74.0,78.9
""",
    )


@pytest.fixture
def repository(
    lms_csv: Path, weight_csv: Path, bmi_csv: Path, curve_csv: Path
) -> StandardsRepository:
    return StandardsRepository(
        tables={
            "height": lms_csv,
            "weight": weight_csv,
            "bmi": bmi_csv,
            "height_curve": curve_csv,
        }
    )


@pytest.fixture
def boy() -> Patient:
    return Patient(
        patient_id="P001",
        dob=dt.date(2015, 3, 1),
        sex="M",
        height_father=175.0,
        height_mother=160.0,
    )


@pytest.fixture
def girl() -> Patient:
    return Patient(
        patient_id="P002",
        dob=dt.date(2014, 6, 15),
        sex="F",
        height_father=175.0,
        height_mother=160.0,
    )


@pytest.fixture
def boy_measurements() -> list:
    """Five-year visit plus a follow-up with no height recorded."""
    return [
        Measurement(
            patient_id="P001", date=dt.date(2020, 3, 1), age_years=5.0, height=109.2, weight=18.3
        ),
        Measurement(
            patient_id="P001", date=dt.date(2020, 9, 1), age_years=5.5, height=0, weight=19.0
        ),
    ]
