#!/usr/bin/env python3
"""
Check growth and hormone reference tables before deploying them.

Loads each growth table (LMS or P3/P50/P97 curve) the same way the engine
does, reports per-sex row counts, age coverage and skipped rows, and checks
the IGF-1 band table. Exits non-zero if any table would fail to load.

Usage:
    python scripts/check_reference_tables.py                 # shipped tables
    python scripts/check_reference_tables.py my_height.csv --igf1 bands.csv
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from growthref.config import IGF1_REFERENCE_TABLE, REFERENCE_TABLES
from growthref.hormones import load_band_table
from growthref.standards import ConfigurationError, StandardsIndex, load_reference_table

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def summarize_index(index: StandardsIndex) -> Dict[str, object]:
    """Row counts and age coverage (months) per sex."""
    summary: Dict[str, object] = {
        "name": index.name,
        "kind": index.kind,
        "skipped": len(index.warnings),
    }
    for sex in index.sexes:
        rows = index.rows(sex)
        summary[sex] = {
            "rows": len(rows),
            "min_agemos": rows[0].agemos,
            "max_agemos": rows[-1].agemos,
        }
    return summary


def check_growth_table(path: Path, name: Optional[str] = None, strict: bool = False) -> bool:
    """Load one growth table; True if usable (and, with strict, nothing skipped)."""
    try:
        index = load_reference_table(path, name=name)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(f"{name or path}: {e}")
        return False

    summary = summarize_index(index)
    for sex in index.sexes:
        info = summary[sex]
        logger.info(
            f"{index.name} [{index.kind}] {sex}: {info['rows']} rows, "
            f"ages {info['min_agemos']}-{info['max_agemos']} months"
        )
    if index.warnings:
        logger.warning(f"{index.name}: {len(index.warnings)} rows skipped")
        if strict:
            return False
    return True


def check_band_table(path: Path) -> bool:
    try:
        table = load_band_table(path)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(f"{path}: {e}")
        return False
    first, last = table.bands[0], table.bands[-1]
    logger.info(
        f"{path.name}: {len(table.bands)} bands covering [{first.min_age}, {last.max_age}) years"
    )
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check growthref reference tables")
    parser.add_argument(
        "tables",
        nargs="*",
        type=Path,
        help="Growth table CSVs to check (default: the shipped tables)",
    )
    parser.add_argument(
        "--igf1",
        type=Path,
        default=IGF1_REFERENCE_TABLE,
        help="IGF-1 band table CSV (default: shipped Roche Elecsys table)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail if any row had to be skipped",
    )
    args = parser.parse_args(argv)

    if args.tables:
        targets = [(path, None) for path in args.tables]
    else:
        targets = [(path, name) for name, path in REFERENCE_TABLES.items()]

    ok = all([check_growth_table(path, name, strict=args.strict) for path, name in targets])
    ok = check_band_table(args.igf1) and ok

    if ok:
        logger.info("All reference tables passed")
        return 0
    logger.error("Reference table check failed")
    return 1


if __name__ == "__main__":
    sys.exit(main())
