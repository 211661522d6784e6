#!/usr/bin/env python3
"""Database overview and integrity checks for Equipment Monitoring."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable

from sqlalchemy import and_, create_engine, func, inspect, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import (
    Equipment,
    History,
    Reservation,
    StatusEquipment,
    StatusHistory,
    StatusReservation,
)
from equipment_monitoring.services.availability_service import intervals_overlap
from equipment_monitoring.services.lifecycle import TERMINAL_STATUSES


EXPECTED_TABLES = [
    "StatusEquipment",
    "StatusReservation",
    "StatusHistory",
    "EquipmentTypes",
    "Roles",
    "Users",
    "Equipment",
    "Reservations",
    "History",
    "AuditLogs",
]

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "Equipment": ["EquipmentID", "Name", "SerialNumber", "StatusEquipmentID", "TypeID"],
    "Reservations": [
        "ReservationID",
        "EquipmentID",
        "UserID",
        "ResponsibleID",
        "StartDate",
        "EndDate",
        "StatusReservationID",
    ],
    "History": ["HistoryID", "EquipmentID", "UserID", "ResponsibleID", "StatusHistoryID", "Date"],
}


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = set(inspect(engine).get_table_names())
    return [CheckResult(f"table:{table}", table in present, "present" if table in present else "missing") for table in EXPECTED_TABLES]


def _run_column_checks(engine: Engine) -> list[CheckResult]:
    inspector = inspect(engine)
    present = set(inspector.get_table_names())
    results: list[CheckResult] = []
    for table, expected in EXPECTED_COLUMNS.items():
        if table not in present:
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = {column["name"] for column in inspector.get_columns(table)}
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def find_double_bookings(db: Session) -> list[tuple[int, int, int]]:
    """Return (equipment_id, reservation_a, reservation_b) for every overlapping pair."""
    rows = db.execute(
        select(Reservation.EquipmentID, Reservation.ReservationID, Reservation.StartDate, Reservation.EndDate)
        .order_by(Reservation.EquipmentID, Reservation.StartDate)
    ).all()
    by_equipment: dict[int, list[tuple]] = {}
    for row in rows:
        by_equipment.setdefault(row[0], []).append(row)

    pairs: list[tuple[int, int, int]] = []
    for equipment_id, items in by_equipment.items():
        for first, second in combinations(items, 2):
            if intervals_overlap(first[2], first[3], second[2], second[3]):
                pairs.append((equipment_id, first[1], second[1]))
    return pairs


def run_integrity_checks(db: Session) -> list[CheckResult]:
    checks: list[CheckResult] = []

    double_bookings = find_double_bookings(db)
    checks.append(
        CheckResult(
            "reservations:overlapping_pairs",
            not double_bookings,
            f"count={len(double_bookings)}" + (f" first={double_bookings[0]}" if double_bookings else ""),
        )
    )

    terminal_rows = db.execute(
        select(func.count(Reservation.ReservationID))
        .join(StatusReservation, StatusReservation.StatusReservationID == Reservation.StatusReservationID)
        .where(StatusReservation.Name.in_(sorted(TERMINAL_STATUSES)))
    ).scalar() or 0
    checks.append(CheckResult("reservations:terminal_status_rows", terminal_rows == 0, f"count={terminal_rows}"))

    available_but_claimed = db.execute(
        select(func.count(func.distinct(Equipment.EquipmentID)))
        .join(StatusEquipment, StatusEquipment.StatusEquipmentID == Equipment.StatusEquipmentID)
        .join(Reservation, Reservation.EquipmentID == Equipment.EquipmentID)
        .where(StatusEquipment.Name == "available")
    ).scalar() or 0
    checks.append(
        CheckResult(
            "equipment:available_with_reservations",
            available_but_claimed == 0,
            f"count={available_but_claimed}",
        )
    )

    # Issued without a reservation is legitimate only after a not_returned event.
    not_returned_equipment = (
        select(History.EquipmentID)
        .join(StatusHistory, StatusHistory.StatusHistoryID == History.StatusHistoryID)
        .where(StatusHistory.Name == "not_returned")
    )
    stranded = db.execute(
        select(func.count(Equipment.EquipmentID))
        .join(StatusEquipment, StatusEquipment.StatusEquipmentID == Equipment.StatusEquipmentID)
        .where(Equipment.EquipmentID.not_in(select(Reservation.EquipmentID)))
        .where(
            or_(
                StatusEquipment.Name == "reserved",
                and_(StatusEquipment.Name == "issued", Equipment.EquipmentID.not_in(not_returned_equipment)),
            )
        )
    ).scalar() or 0
    checks.append(CheckResult("equipment:held_without_reservations", stranded == 0, f"count={stranded}"))

    orphan_history = db.execute(
        select(func.count(History.HistoryID))
        .outerjoin(Equipment, Equipment.EquipmentID == History.EquipmentID)
        .where(Equipment.EquipmentID.is_(None))
    ).scalar() or 0
    checks.append(CheckResult("history:orphan_equipmentid", orphan_history == 0, f"count={orphan_history}"))
    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(db: Session, engine: Engine) -> None:
    _print_section("Row Counts")
    present = set(inspect(engine).get_table_names())
    for model in (Equipment, Reservation, History):
        if model.__tablename__ not in present:
            print(f"{model.__tablename__}: missing")
            continue
        count = db.execute(select(func.count()).select_from(model)).scalar()
        print(f"{model.__tablename__}: {int(count or 0)}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Equipment Monitoring DB overview")
    parser.add_argument("--db-url", default=os.environ.get("EQUIPMENT_MONITORING_DB_URL", ""))
    args = parser.parse_args()

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("EQUIPMENT_MONITORING_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        inspect(engine).get_table_names()
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    existence = _run_existence_checks(engine)
    _print_results("Table Existence", existence)
    _print_results("Column Checks", _run_column_checks(engine))
    if not all(row.ok for row in existence):
        return 1

    with Session(engine) as db:
        integrity = run_integrity_checks(db)
        _print_results("Integrity Checks", integrity)
        _print_row_counts(db, engine)
    return 0 if all(row.ok for row in integrity) else 1


if __name__ == "__main__":
    sys.exit(main())
