from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import Equipment, History, Reservation
from equipment_monitoring.schemas.equipment import EquipmentUpsert
from equipment_monitoring.services.access_service import MANAGE_EQUIPMENT, Actor, require_capability
from equipment_monitoring.services.audit_service import log_audit
from equipment_monitoring.services.directory_service import resolve_equipment_status, resolve_equipment_type
from equipment_monitoring.services.equipment_locks import equipment_write_guard
from equipment_monitoring.services.errors import ConflictError, NotFoundError
from equipment_monitoring.services.paging import paginate


EQUIPMENT_LOGGER = logging.getLogger("equipment_monitoring.equipment")


def _parse_seq(serial_number: str) -> Optional[int]:
    parts = serial_number.split("-")
    if len(parts) != 2:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def generate_next_serial_number(db: Session) -> str:
    prefix = f"EQ{date.today().year}-"
    existing = db.execute(
        select(Equipment.SerialNumber).where(Equipment.SerialNumber.startswith(prefix))
    ).scalars().all()

    max_seq = 0
    for serial in existing:
        if not serial:
            continue
        seq = _parse_seq(serial)
        if seq and seq > max_seq:
            max_seq = seq
    return f"{prefix}{max_seq + 1:04d}"


def _serial_taken(db: Session, serial_number: str, current: Equipment | None = None) -> bool:
    found = db.execute(select(Equipment).where(Equipment.SerialNumber == serial_number)).scalars().first()
    if found is None:
        return False
    return current is None or found.EquipmentID != current.EquipmentID


def get_equipment(db: Session, equipment_id: int) -> Equipment:
    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFoundError("Equipment", "id", equipment_id)
    return equipment


def list_equipment(
    db: Session,
    *,
    status: str | None = None,
    type_ref: int | str | None = None,
    page: int = 0,
    size: int = 30,
) -> dict:
    stmt = select(Equipment)
    if status:
        stmt = stmt.where(Equipment.StatusEquipmentID == resolve_equipment_status(db, status).StatusEquipmentID)
    if type_ref is not None:
        stmt = stmt.where(Equipment.TypeID == resolve_equipment_type(db, type_ref).TypeID)
    stmt = stmt.order_by(Equipment.Name, Equipment.EquipmentID)
    return paginate(db, stmt, page, size, serialize_equipment)


def create_equipment(db: Session, payload: EquipmentUpsert, actor: Actor) -> Equipment:
    require_capability(actor, MANAGE_EQUIPMENT)
    try:
        serial_number = (payload.serialNumber or "").strip() or generate_next_serial_number(db)
        if _serial_taken(db, serial_number):
            raise ConflictError(f"Equipment already exists with serialNumber : '{serial_number}'")

        status = resolve_equipment_status(db, "available")
        equipment_type = resolve_equipment_type(db, payload.type_ref)
        now = datetime.now()
        equipment = Equipment(
            Name=payload.name.strip(),
            SerialNumber=serial_number,
            StatusEquipmentID=status.StatusEquipmentID,
            TypeID=equipment_type.TypeID,
            CreatedBy=actor.user_id,
            CreatedDate=now,
            UpdatedDate=now,
        )
        equipment.Status = status
        equipment.Type = equipment_type
        db.add(equipment)
        db.flush()
        log_audit(db, "Equipment", equipment.EquipmentID, "CreateEquipment", f"serial={serial_number}", user_id=actor.user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    EQUIPMENT_LOGGER.info("Equipment created equipment_id=%s serial=%s user_id=%s", equipment.EquipmentID, serial_number, actor.user_id)
    return equipment


def update_equipment(db: Session, equipment_id: int, payload: EquipmentUpsert, actor: Actor) -> Equipment:
    # Status is owned by the reservation lifecycle and cannot be set here.
    require_capability(actor, MANAGE_EQUIPMENT)
    try:
        equipment = get_equipment(db, equipment_id)
        serial_number = (payload.serialNumber or "").strip() or equipment.SerialNumber
        if _serial_taken(db, serial_number, equipment):
            raise ConflictError(f"Equipment already exists with serialNumber : '{serial_number}'")

        equipment_type = resolve_equipment_type(db, payload.type_ref)
        equipment.Name = payload.name.strip()
        equipment.SerialNumber = serial_number
        equipment.Type = equipment_type
        equipment.TypeID = equipment_type.TypeID
        equipment.UpdatedDate = datetime.now()
        log_audit(db, "Equipment", equipment.EquipmentID, "UpdateEquipment", f"serial={serial_number}", user_id=actor.user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return equipment


def delete_equipment(db: Session, equipment_id: int, actor: Actor) -> None:
    require_capability(actor, MANAGE_EQUIPMENT)
    with equipment_write_guard(db, equipment_id):
        try:
            equipment = get_equipment(db, equipment_id)
            reservations = db.execute(
                select(func.count(Reservation.ReservationID)).where(Reservation.EquipmentID == equipment_id)
            ).scalar() or 0
            if reservations:
                raise ConflictError(f"Equipment {equipment_id} still has {reservations} reservation(s).")
            history_rows = db.execute(
                select(func.count(History.HistoryID)).where(History.EquipmentID == equipment_id)
            ).scalar() or 0
            if history_rows:
                raise ConflictError(f"Equipment {equipment_id} is referenced by history and cannot be deleted.")

            db.delete(equipment)
            log_audit(db, "Equipment", equipment_id, "DeleteEquipment", None, user_id=actor.user_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

    EQUIPMENT_LOGGER.info("Equipment deleted equipment_id=%s user_id=%s", equipment_id, actor.user_id)


def serialize_equipment(equipment: Equipment) -> dict:
    return {
        "equipmentID": equipment.EquipmentID,
        "name": equipment.Name,
        "serialNumber": equipment.SerialNumber,
        "statusEquipmentID": equipment.StatusEquipmentID,
        "status": equipment.Status.Name if equipment.Status else None,
        "typeID": equipment.TypeID,
        "type": equipment.Type.Name if equipment.Type else None,
        "createdBy": equipment.CreatedBy,
        "createdDate": equipment.CreatedDate,
        "updatedDate": equipment.UpdatedDate,
    }
