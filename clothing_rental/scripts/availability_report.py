#!/usr/bin/env python3
"""Consistency report for rentals and item availability.

Lists clothing items whose ``available`` flag disagrees with the open rentals
that reference them, plus a few structural checks. Nothing is modified.
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from services.rental_store import RentalStore  # noqa: E402

EXPECTED_TABLES = ["clothing_items", "customers", "rentals", "rental_items"]


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _scalar(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).scalar()


def run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = set(inspect(engine).get_table_names())
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def run_integrity_checks(engine: Engine) -> list[CheckResult]:
    checks: list[CheckResult] = []

    orphan_lines = _scalar(
        engine,
        """
        SELECT COUNT(*)
        FROM rental_items ri
        LEFT JOIN rentals r ON r.id = ri.rental_id
        WHERE r.id IS NULL
        """,
    )
    checks.append(CheckResult("rental_items:orphan_rental_id", int(orphan_lines or 0) == 0, f"count={int(orphan_lines or 0)}"))

    missing_items = _scalar(
        engine,
        """
        SELECT COUNT(*)
        FROM rentals r
        LEFT JOIN clothing_items ci ON ci.id = r.clothing_item_id
        WHERE ci.id IS NULL
        """,
    )
    checks.append(CheckResult("rentals:missing_main_item", int(missing_items or 0) == 0, f"count={int(missing_items or 0)}"))

    reversed_dates = _scalar(engine, "SELECT COUNT(*) FROM rentals WHERE end_date < start_date")
    checks.append(CheckResult("rentals:end_before_start", int(reversed_dates or 0) == 0, f"count={int(reversed_dates or 0)}"))

    negative_totals = _scalar(engine, "SELECT COUNT(*) FROM rentals WHERE total_price < 0")
    checks.append(CheckResult("rentals:negative_total_price", int(negative_totals or 0) == 0, f"count={int(negative_totals or 0)}"))

    with Session(engine) as db:
        mismatches = RentalStore(db).find_availability_mismatches()
    detail = "ok" if not mismatches else ", ".join(
        f"{row['clothingItemID']}:{row['name']} available={row['available']} expected={row['expectedAvailable']}"
        for row in mismatches
    )
    checks.append(CheckResult("clothing_items:availability_matches_rentals", not mismatches, detail))
    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine) -> None:
    _print_section("Row Counts")
    for table in EXPECTED_TABLES:
        count = _scalar(engine, f"SELECT COUNT(*) FROM {table}")
        print(f"{table}: {int(count or 0)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Clothing rental availability report")
    parser.add_argument("--db-url", default=os.environ.get("CLOTHING_RENTAL_DB_URL", ""))
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("CLOTHING_RENTAL_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    existence = run_existence_checks(engine)
    _print_results("Table Existence", existence)
    if not all(row.ok for row in existence):
        return 1

    integrity = run_integrity_checks(engine)
    _print_results("Integrity Checks", integrity)
    _print_row_counts(engine)
    return 0 if all(row.ok for row in integrity) else 1


if __name__ == "__main__":
    sys.exit(main())
