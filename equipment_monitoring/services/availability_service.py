from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import Reservation
from equipment_monitoring.services.timestamps import to_naive_utc


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # Closed intervals: a reservation ending at 12:00 blocks one starting at 12:00.
    return start_a <= end_b and end_a >= start_b


def _overlap_stmt(equipment_id: int, start_date: datetime, end_date: datetime, exclude_reservation_id: int | None):
    start_date = to_naive_utc(start_date)
    end_date = to_naive_utc(end_date)
    stmt = (
        select(Reservation)
        .where(Reservation.EquipmentID == equipment_id)
        .where(Reservation.StartDate <= end_date)
        .where(Reservation.EndDate >= start_date)
    )
    if exclude_reservation_id is not None:
        stmt = stmt.where(Reservation.ReservationID != exclude_reservation_id)
    return stmt


def has_overlap(
    db: Session,
    equipment_id: int,
    start_date: datetime,
    end_date: datetime,
    exclude_reservation_id: int | None = None,
) -> bool:
    stmt = _overlap_stmt(equipment_id, start_date, end_date, exclude_reservation_id).limit(1)
    return db.execute(stmt).scalars().first() is not None


def find_overlapping(
    db: Session,
    equipment_id: int,
    start_date: datetime,
    end_date: datetime,
    exclude_reservation_id: int | None = None,
) -> list[Reservation]:
    stmt = _overlap_stmt(equipment_id, start_date, end_date, exclude_reservation_id).order_by(Reservation.StartDate)
    return list(db.execute(stmt).scalars().all())
