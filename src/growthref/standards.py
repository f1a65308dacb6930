"""
Growth reference tables (LMS coefficients and simplified percentile curves).

Tables are parsed once into a read-only per-sex index. Rows are kept sorted
by age in months and looked up by binary search, since the source tables mix
granularities (monthly through infancy, then quarterly or yearly).
"""

import logging
import math
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import (
    COLUMN_ALIASES,
    CURVE_FIELDS,
    LMS_FIELDS,
    MONTHS_PER_YEAR,
    REFERENCE_TABLES,
    REQUIRED_SEXES,
)
from .models import CurvePoint, LMSRow, normalize_sex

logger = logging.getLogger(__name__)

StandardRow = Union[LMSRow, CurvePoint]
Source = Union[str, Path]


class ConfigurationError(ValueError):
    """Reference data cannot back lookups (e.g. no usable rows for a sex)."""


def age_years_to_months(age_years: Optional[float]) -> Optional[int]:
    """Round age in years to the nearest whole month (halves round up)."""
    if age_years is None or not math.isfinite(age_years) or age_years < 0:
        return None
    return int(math.floor(age_years * MONTHS_PER_YEAR + 0.5))


class StandardsIndex:
    """
    Read-only index of reference rows for each sex.

    Attributes:
        name: Table name used in messages.
        kind: 'lms' or 'curve'.
        warnings: Messages for rows skipped while parsing.
    """

    def __init__(
        self,
        rows_by_sex: Mapping[str, Iterable[StandardRow]],
        kind: str,
        name: str = "",
        warnings: Sequence[str] = (),
    ) -> None:
        self.name = name
        self.kind = kind
        self.warnings: Tuple[str, ...] = tuple(warnings)
        self._rows: Dict[str, Tuple[StandardRow, ...]] = {}
        self._ages: Dict[str, np.ndarray] = {}
        for sex, rows in rows_by_sex.items():
            ordered = tuple(sorted(rows, key=lambda r: r.agemos))
            ages = np.array([r.agemos for r in ordered], dtype=np.int64)
            if len(ages) > 1 and not np.all(np.diff(ages) > 0):
                raise ValueError(f"{name}: duplicate ages for sex '{sex}'")
            self._rows[sex] = ordered
            self._ages[sex] = ages

    @property
    def sexes(self) -> List[str]:
        return sorted(self._rows)

    def rows(self, sex: str) -> Tuple[StandardRow, ...]:
        code = normalize_sex(sex)
        if code is None:
            return ()
        return self._rows.get(code, ())

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._rows.values())

    def lookup(self, sex: str, age_months: int) -> Optional[StandardRow]:
        """Return the row with exactly this age in months, or None."""
        code = normalize_sex(sex)
        if code is None or code not in self._ages:
            return None
        ages = self._ages[code]
        i = int(np.searchsorted(ages, age_months))
        if i < len(ages) and ages[i] == age_months:
            return self._rows[code][i]
        return None

    def lookup_years(self, sex: str, age_years: Optional[float]) -> Optional[StandardRow]:
        """Exact-month lookup for an age given in years."""
        age_months = age_years_to_months(age_years)
        if age_months is None:
            return None
        return self.lookup(sex, age_months)


def _normalize_columns(columns: Iterable[str]) -> List[str]:
    known = {f.upper(): f for f in LMS_FIELDS + CURVE_FIELDS}
    result = []
    for col in columns:
        name = str(col).strip()
        key = name.lower()
        if key in COLUMN_ALIASES:
            result.append(COLUMN_ALIASES[key])
        elif name.upper() in known:
            result.append(known[name.upper()])
        else:
            result.append(name)
    return result


def _detect_kind(columns: Sequence[str], name: str) -> str:
    present = set(columns)
    if not {"sex", "agemos"} <= present:
        raise ConfigurationError(f"Reference table '{name}' needs 'sex' and 'agemos' columns")
    if set(LMS_FIELDS) <= present:
        return "lms"
    if set(CURVE_FIELDS) <= present:
        return "curve"
    raise ConfigurationError(
        f"Reference table '{name}' has neither L/M/S nor P3/P50/P97 columns: {list(columns)}"
    )


def _parse_row(record: Mapping[str, object], kind: str) -> StandardRow:
    """Build one row; raises ValueError/TypeError on any malformed field."""
    sex = normalize_sex(record.get("sex"))
    if sex is None:
        raise ValueError(f"unknown sex code {record.get('sex')!r}")
    agemos = float(record["agemos"])  # type: ignore[arg-type]
    if not math.isfinite(agemos) or not agemos.is_integer():
        raise ValueError(f"age in months must be a whole number, got {record['agemos']!r}")

    fields = LMS_FIELDS if kind == "lms" else CURVE_FIELDS
    values = {}
    for field in fields:
        value = float(record[field])  # type: ignore[arg-type]
        if not math.isfinite(value):
            raise ValueError(f"non-numeric {field} value {record[field]!r}")
        values[field] = value

    model = LMSRow if kind == "lms" else CurvePoint
    return model(sex=sex, agemos=int(agemos), **values)


def parse_reference_table(
    source: Source, name: Optional[str] = None, skiprows: int = 0
) -> Tuple[str, Dict[str, List[StandardRow]], List[str]]:
    """
    Parse a reference CSV into per-sex row lists.

    Malformed rows are skipped and reported in the returned warning list;
    they never abort the whole table.

    Args:
        source: Path to the CSV file.
        name: Table name for messages (defaults to the file stem).
        skiprows: Leading lines to skip before the header.

    Returns:
        Tuple of (kind, rows keyed by sex, warning messages).

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the header does not describe a reference table.
    """
    name = name or Path(source).stem
    warnings: List[str] = []

    def _bad_line(fields: List[str]) -> None:
        warnings.append(f"{name}: skipped malformed line {','.join(fields)!r}")
        return None

    try:
        df = pd.read_csv(
            source,
            dtype=str,
            skiprows=skiprows,
            engine="python",
            on_bad_lines=_bad_line,
            skipinitialspace=True,
        )
    except FileNotFoundError:
        raise FileNotFoundError(
            f"Reference table '{name}' not found at {source}. "
            "Check the table registry in growthref.config or pass an explicit path."
        ) from None

    df.columns = _normalize_columns(df.columns)
    kind = _detect_kind(list(df.columns), name)

    rows: Dict[str, List[StandardRow]] = {}
    seen = set()
    for i, record in enumerate(df.to_dict("records"), start=1):
        try:
            row = _parse_row(record, kind)
        except (TypeError, ValueError, KeyError) as e:
            warnings.append(f"{name}: skipped row {i}: {e}")
            continue
        key = (row.sex, row.agemos)
        if key in seen:
            warnings.append(f"{name}: skipped row {i}: duplicate age {row.agemos} for sex {row.sex}")
            continue
        seen.add(key)
        rows.setdefault(row.sex, []).append(row)

    for message in warnings:
        logger.warning(message)
    return kind, rows, warnings


def load_reference_table(
    source: Source,
    name: Optional[str] = None,
    required_sexes: Sequence[str] = REQUIRED_SEXES,
    skiprows: int = 0,
) -> StandardsIndex:
    """
    Load a reference table into a StandardsIndex.

    Raises:
        ConfigurationError: If any required sex ends up with zero usable rows.
    """
    name = name or Path(source).stem
    kind, rows, warnings = parse_reference_table(source, name=name, skiprows=skiprows)

    missing = [sex for sex in required_sexes if not rows.get(sex)]
    if missing:
        raise ConfigurationError(
            f"Reference table '{name}' has no usable rows for sex {missing} "
            f"({len(warnings)} rows skipped)"
        )

    counts = ", ".join(f"{sex}={len(r)}" for sex, r in sorted(rows.items()))
    logger.info(f"Loaded reference table '{name}' ({kind}): {counts}")
    return StandardsIndex(rows, kind=kind, name=name, warnings=warnings)


class StandardsRepository:
    """
    Named reference tables, each loaded once on first use.

    Loading is guarded by a lock so concurrent first callers share a single
    load. After loading, indexes are read-only and safe to share between
    threads.
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Source]] = None,
        required_sexes: Sequence[str] = REQUIRED_SEXES,
    ) -> None:
        self._sources: Dict[str, Source] = dict(REFERENCE_TABLES if tables is None else tables)
        self._required_sexes = tuple(required_sexes)
        self._indexes: Dict[str, StandardsIndex] = {}
        self._lock = threading.Lock()

    @property
    def table_names(self) -> List[str]:
        return sorted(self._sources)

    def _load(self, name: str) -> StandardsIndex:
        if name not in self._sources:
            raise KeyError(f"Unknown reference table '{name}'. Available: {self.table_names}")
        return load_reference_table(
            self._sources[name], name=name, required_sexes=self._required_sexes
        )

    def get(self, name: str) -> StandardsIndex:
        index = self._indexes.get(name)
        if index is None:
            with self._lock:
                index = self._indexes.get(name)
                if index is None:
                    index = self._load(name)
                    self._indexes[name] = index
        return index

    def preload(self) -> None:
        """Load every registered table now instead of on first use."""
        for name in self.table_names:
            self.get(name)

    def reload(self) -> None:
        """Re-read every table; the new set replaces the old one only if all load."""
        with self._lock:
            fresh = {name: self._load(name) for name in self.table_names}
            self._indexes = fresh

    def lookup(self, name: str, sex: str, age_years: Optional[float]) -> Optional[StandardRow]:
        return self.get(name).lookup_years(sex, age_years)


_DEFAULT_REPOSITORY: Optional[StandardsRepository] = None
_DEFAULT_LOCK = threading.Lock()


def get_default_repository() -> StandardsRepository:
    """Process-wide repository over the shipped tables."""
    global _DEFAULT_REPOSITORY
    if _DEFAULT_REPOSITORY is None:
        with _DEFAULT_LOCK:
            if _DEFAULT_REPOSITORY is None:
                _DEFAULT_REPOSITORY = StandardsRepository()
    return _DEFAULT_REPOSITORY
