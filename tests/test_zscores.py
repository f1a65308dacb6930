import datetime as dt
import logging

import numpy as np
import pytest
from hypothesis import HealthCheck, example, given, settings, strategies as st
from scipy import stats

from growthref.models import LMSRow, Measurement
from growthref.zscores import (
    PercentileEngine,
    enrich_measurements,
    lms_value,
    lms_zscore,
    normal_cdf,
    zscore,
)

ROW = LMSRow(sex="M", agemos=60, L=0.2204, M=109.2, S=0.0432)


@pytest.fixture
def height_engine(repository) -> PercentileEngine:
    return PercentileEngine("height", repository)


def test_tc001_lms_zscore_normal_case() -> None:
    """LMS Z-Score for normal case (L≠0)"""
    z = lms_zscore(np.array([17.9]), np.array([0.5]), np.array([18.0]), np.array([0.1]))
    # ((17.9/18)^0.5 - 1) / (0.5 * 0.1) ≈ -0.0556
    assert np.isclose(z[0], -0.0556, atol=1e-4)


def test_tc002_lms_zscore_log_fallback() -> None:
    """LMS Z-Score for |L| < 0.01 uses ln(X/M)/S"""
    z = lms_zscore(np.array([19.0]), np.array([0.005]), np.array([18.0]), np.array([0.1]))
    assert np.isclose(z[0], np.log(19.0 / 18.0) / 0.1, atol=1e-9)


def test_tc003_lms_zscore_invalid_entries_nan() -> None:
    """Non-positive or missing inputs give NaN without touching other entries"""
    X = np.array([0.0, -1.0, np.nan, 18.0, 18.0])
    L = np.array([0.5, 0.5, 0.5, np.nan, 0.5])
    M = np.full(5, 18.0)
    S = np.full(5, 0.1)
    z = lms_zscore(X, L, M, S)
    assert np.all(np.isnan(z[:4]))
    assert np.isclose(z[4], 0.0)


def test_tc004_scalar_zscore_matches_batch() -> None:
    """Scalar zscore agrees with the JIT batch version"""
    values = np.array([100.0, 109.2, 118.5])
    batch = lms_zscore(
        values, np.full(3, ROW.L), np.full(3, ROW.M), np.full(3, ROW.S)
    )
    for v, z in zip(values, batch):
        assert np.isclose(zscore(float(v), ROW), z)


def test_tc005_normal_cdf_anchor_points() -> None:
    """CDF at 0 is one half; tails approach 0 and 1"""
    assert abs(normal_cdf(0.0) - 0.5) < 1e-7
    assert normal_cdf(-8.0) < 1e-7
    assert normal_cdf(8.0) > 1 - 1e-7
    assert isinstance(normal_cdf(1.0), float)


@given(st.floats(min_value=-8, max_value=8, allow_nan=False))
def test_tc006_normal_cdf_matches_scipy(x) -> None:
    """Closed-form CDF stays within 1e-6 of scipy's"""
    assert abs(normal_cdf(x) - stats.norm.cdf(x)) < 1e-6


@given(st.floats(min_value=0, max_value=8, allow_nan=False))
@example(0.0)
def test_tc007_normal_cdf_symmetry(x) -> None:
    """Negative side is the reflection of the positive side"""
    assert abs(normal_cdf(x) + normal_cdf(-x) - 1.0) < 2e-7


def test_tc008_normal_cdf_array_and_nan() -> None:
    """Arrays in, arrays out; NaN propagates"""
    out = normal_cdf(np.array([-1.0, np.nan, 1.0]))
    assert out.shape == (3,)
    assert np.isnan(out[1])
    assert np.isclose(out[0] + out[2], 1.0)


def test_tc009_lms_value_inverts_zscore() -> None:
    """Inverse LMS recovers the measurement"""
    for value in (95.0, 109.2, 125.0):
        assert np.isclose(lms_value(zscore(value, ROW), ROW), value)


def test_tc010_lms_value_log_branch() -> None:
    """Inverse uses M*exp(S*z) when L is near zero"""
    row = LMSRow(sex="F", agemos=12, L=0.0, M=74.6, S=0.0315)
    assert np.isclose(lms_value(1.0, row), 74.6 * np.exp(0.0315))


def test_tc011_median_is_fiftieth(height_engine) -> None:
    """A value equal to M sits at the 50th percentile"""
    assert abs(height_engine.percentile(109.2, 5.0, "M") - 50.0) < 1e-5
    assert abs(height_engine.percentile(74.6, 1.0, "F") - 50.0) < 1e-5


def test_tc012_percentile_none_cases(height_engine) -> None:
    """Missing value, zero, unknown sex or uncovered age give None"""
    assert height_engine.percentile(None, 5.0, "M") is None
    assert height_engine.percentile(0, 5.0, "M") is None
    assert height_engine.percentile(float("nan"), 5.0, "M") is None
    assert height_engine.percentile(109.2, 5.0, "X") is None
    assert height_engine.percentile(109.2, 2.5, "M") is None  # 30 months: no row
    assert height_engine.percentile(109.2, -1.0, "M") is None
    assert height_engine.percentile(109.2, None, "M") is None


@settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(
    st.floats(min_value=90, max_value=130, allow_nan=False),
    st.floats(min_value=0.01, max_value=10, allow_nan=False),
)
def test_tc013_percentile_monotonic(repository, value, delta) -> None:
    """Larger values never get a lower percentile"""
    engine = PercentileEngine("height", repository)
    low = engine.percentile(value, 5.0, "M")
    high = engine.percentile(value + delta, 5.0, "M")
    assert 0.0 <= low <= high <= 100.0


@settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(st.floats(min_value=1, max_value=99, allow_nan=False))
def test_tc014_value_at_percentile_round_trip(repository, p) -> None:
    """percentile(value_at_percentile(p)) recovers p"""
    engine = PercentileEngine("height", repository)
    value = engine.value_at_percentile(p, 5.0, "M")
    assert abs(engine.percentile(value, 5.0, "M") - p) < 1e-4


def test_tc015_value_at_percentile_bounds(height_engine) -> None:
    """Percentiles at or beyond 0/100 are rejected; uncovered ages give None"""
    with pytest.raises(ValueError):
        height_engine.value_at_percentile(0, 5.0, "M")
    with pytest.raises(ValueError):
        height_engine.value_at_percentile(100, 5.0, "M")
    assert height_engine.value_at_percentile(50, 2.5, "M") is None
    assert np.isclose(height_engine.value_at_percentile(50, 5.0, "M"), 109.2)


def test_tc016_batch_percentiles_match_scalar(height_engine) -> None:
    """Batch results equal single calls, NaN where a single call gives None"""
    values = [109.2, 120.0, 50.0, 80.0, 0.0]
    ages = [5.0, 5.0, 0.0, 2.5, 1.0]
    sexes = ["M", "F", "M", "M", "F"]
    batch = height_engine.percentiles(values, ages, sexes)
    assert batch.shape == (5,)
    for i in range(5):
        single = height_engine.percentile(values[i], ages[i], sexes[i])
        if single is None:
            assert np.isnan(batch[i])
        else:
            assert np.isclose(batch[i], single)
    assert np.isnan(batch[3]) and np.isnan(batch[4])


def test_tc017_batch_length_mismatch(height_engine) -> None:
    with pytest.raises(ValueError, match="same length"):
        height_engine.percentiles([100.0, 110.0], [5.0], ["M", "M"])


def test_tc018_curve_table_rejected(repository) -> None:
    """Percentiles need LMS coefficients, not a P3/P50/P97 curve"""
    engine = PercentileEngine("height_curve", repository)
    with pytest.raises(TypeError, match="LMS"):
        engine.percentile(75.0, 1.0, "M")


def test_tc019_enrich_measurements(repository, boy, boy_measurements) -> None:
    """Height percentile, BMI and BMI percentile are attached per visit"""
    enriched = enrich_measurements(boy_measurements, boy, repository)
    assert len(enriched) == 2

    first = enriched[0]
    assert abs(first.height_percentile - 50.0) < 1e-5
    assert first.bmi == 15.35  # 18.3 / 1.092^2
    assert 50.0 < first.bmi_percentile < 51.0

    # Height 0 means not measured: no BMI and no percentiles
    second = enriched[1]
    assert second.height is None
    assert second.height_percentile is None
    assert second.bmi is None
    assert second.bmi_percentile is None
    assert second.weight == 19.0


def test_tc020_enrich_derives_age_from_dob(repository, boy) -> None:
    """Age is derived from the date of birth when not given"""
    m = Measurement(patient_id="P001", date=dt.date(2020, 3, 1), height=109.2, weight=18.3)
    enriched = enrich_measurements([m], boy, repository)[0]
    assert np.isclose(enriched.age_years, 1827 / 365.25)
    assert abs(enriched.height_percentile - 50.0) < 1e-5


def test_tc021_enrich_before_birth(repository, boy, caplog) -> None:
    """Measurements dated before birth get no age and no percentiles"""
    caplog.set_level(logging.WARNING)
    m = Measurement(patient_id="P001", date=dt.date(2014, 1, 1), height=50.0, weight=3.0)
    enriched = enrich_measurements([m], boy, repository)[0]
    assert enriched.age_years is None
    assert enriched.height_percentile is None
    assert enriched.bmi_percentile is None
    assert any("precedes date of birth" in r.message for r in caplog.records)


def test_tc022_tiny_value_overflow(repository) -> None:
    """A vanishing value against a negative-L row gives z=-inf, not an exception"""
    engine = PercentileEngine("bmi", repository)
    row = engine.lookup("M", 5.0)
    assert row.L < 0
    assert zscore(1e-300, row) == -np.inf
    assert engine.percentile(1e-300, 5.0, "M") == 0.0
    assert engine.percentiles([1e-300], [5.0], ["M"])[0] == 0.0


def test_tc023_huge_value_overflow() -> None:
    """Overflow takes the sign of L"""
    row = LMSRow(sex="M", agemos=60, L=2.0, M=1.0, S=0.1)
    assert zscore(1e200, row) == np.inf


@settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(
    st.floats(min_value=60, max_value=160, allow_nan=False),
    st.sampled_from(["M", "F"]),
)
def test_tc024_percentile_is_cdf_of_zscore(repository, value, sex) -> None:
    """Engine percentile equals Phi(z) * 100 for the matching row"""
    engine = PercentileEngine("height", repository)
    row = engine.lookup(sex, 5.0)
    expected = normal_cdf(zscore(value, row)) * 100.0
    assert abs(engine.percentile(value, 5.0, sex) - expected) < 1e-6


def test_tc025_weight_percentile(repository, boy) -> None:
    """Weight-for-age percentile sits at 50 for the median weight"""
    m = Measurement(
        patient_id="P001", date=dt.date(2020, 3, 1), age_years=5.0, height=109.2, weight=18.62
    )
    enriched = enrich_measurements([m], boy, repository)[0]
    assert abs(enriched.weight_percentile - 50.0) < 1e-5

    light = Measurement(
        patient_id="P001", date=dt.date(2020, 3, 1), age_years=5.0, height=109.2, weight=15.0
    )
    assert enrich_measurements([light], boy, repository)[0].weight_percentile < 10.0


def test_tc026_weight_percentile_missing(repository, boy, boy_measurements) -> None:
    """No weight or no table row leaves weight_percentile None"""
    enriched = enrich_measurements(boy_measurements, boy, repository)
    assert enriched[0].weight_percentile is not None
    # 5.5 years has no weight row in the table
    assert enriched[1].weight_percentile is None

    m = Measurement(patient_id="P001", date=dt.date(2020, 3, 1), age_years=5.0, height=109.2)
    assert enrich_measurements([m], boy, repository)[0].weight_percentile is None


def test_tc027_enrich_accepts_dicts(repository, boy, boy_measurements) -> None:
    """Plain dict measurements and patient give the same result as models"""
    records = [m.model_dump() for m in boy_measurements]
    from_dicts = enrich_measurements(records, boy.model_dump(), repository)
    assert from_dicts == enrich_measurements(boy_measurements, boy, repository)
    assert from_dicts[0].height_percentile is not None
