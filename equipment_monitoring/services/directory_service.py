from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import (
    EquipmentType,
    Role,
    StatusEquipment,
    StatusHistory,
    StatusReservation,
)
from equipment_monitoring.services.errors import NotFoundError


EQUIPMENT_STATUSES = ("available", "reserved", "issued")
RESERVATION_STATUSES = ("pending", "confirmed", "issued", "cancelled", "rejected", "returned", "not_returned")
HISTORY_STATUSES = ("cancelled", "rejected", "returned", "not_returned")
EQUIPMENT_TYPES = (
    "camera",
    "lens",
    "microphone",
    "tripod",
    "light",
    "reflector",
    "audio_recorder",
    "headphones",
    "stabilizer",
    "backdrop",
)
ROLE_NAMES = ("user", "studio", "admin")

_DIRECTORIES = (
    (StatusEquipment, EQUIPMENT_STATUSES),
    (StatusReservation, RESERVATION_STATUSES),
    (StatusHistory, HISTORY_STATUSES),
    (EquipmentType, EQUIPMENT_TYPES),
    (Role, ROLE_NAMES),
)


def seed_directories(db: Session) -> int:
    """Insert every missing dictionary value. Returns the number of rows added."""
    added = 0
    for model, names in _DIRECTORIES:
        existing = set(db.execute(select(model.Name)).scalars().all())
        for name in names:
            if name in existing:
                continue
            db.add(model(Name=name))
            added += 1
    db.flush()
    return added


def _by_name(db: Session, model, name: str, label: str):
    key = (name or "").strip().lower()
    row = db.execute(select(model).where(model.Name == key)).scalars().first()
    if not row:
        raise NotFoundError(label, "name", name)
    return row


def _by_id_or_name(db: Session, model, value: int | str, label: str):
    if isinstance(value, int) or str(value).strip().isdigit():
        row = db.get(model, int(value))
        if not row:
            raise NotFoundError(label, "id", value)
        return row
    return _by_name(db, model, str(value), label)


def resolve_equipment_status(db: Session, name: str) -> StatusEquipment:
    return _by_name(db, StatusEquipment, name, "StatusEquipment")


def resolve_reservation_status(db: Session, value: int | str) -> StatusReservation:
    return _by_id_or_name(db, StatusReservation, value, "StatusReservation")


def resolve_history_status(db: Session, value: int | str) -> StatusHistory:
    return _by_id_or_name(db, StatusHistory, value, "StatusHistory")


def resolve_equipment_type(db: Session, value: int | str) -> EquipmentType:
    return _by_id_or_name(db, EquipmentType, value, "Type")


def resolve_role(db: Session, name: str) -> Role:
    return _by_name(db, Role, name, "Role")
