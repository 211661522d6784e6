from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import Equipment, History, User
from equipment_monitoring.schemas.history import CreateHistoryDto
from equipment_monitoring.services.access_service import MANAGE_HISTORY, Actor, require_capability
from equipment_monitoring.services.audit_service import log_audit
from equipment_monitoring.services.directory_service import resolve_equipment_status, resolve_history_status
from equipment_monitoring.services.equipment_locks import equipment_write_guard
from equipment_monitoring.services.errors import NotFoundError, UnauthorizedError
from equipment_monitoring.services.lifecycle import HISTORY_EQUIPMENT_EFFECTS
from equipment_monitoring.services.paging import paginate
from equipment_monitoring.services.timestamps import to_naive_utc


HISTORY_LOGGER = logging.getLogger("equipment_monitoring.history")


def _require_user(db: Session, user_id: int, label: str = "User") -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(label, "id", user_id)
    return user


def record_history(
    db: Session,
    equipment: Equipment,
    user_id: int,
    responsible_id: int,
    status: int | str,
    date: datetime,
    created_by: int | None = None,
) -> History:
    """Append one history event inside the caller's unit of work.

    Also applies the equipment status rule tied to the event:
    ``not_returned`` leaves the equipment issued, ``returned`` frees it.
    Other events do not touch the equipment. Nothing is committed here.
    """
    _require_user(db, user_id)
    _require_user(db, responsible_id)
    status_history = resolve_history_status(db, status)

    target_status = HISTORY_EQUIPMENT_EFFECTS.get(status_history.Name)
    if target_status:
        equipment_status = resolve_equipment_status(db, target_status)
        equipment.Status = equipment_status
        equipment.StatusEquipmentID = equipment_status.StatusEquipmentID
        equipment.UpdatedDate = datetime.now()

    history = History(
        EquipmentID=equipment.EquipmentID,
        UserID=user_id,
        ResponsibleID=responsible_id,
        StatusHistoryID=status_history.StatusHistoryID,
        Date=to_naive_utc(date),
        CreatedBy=created_by,
        CreatedDate=datetime.now(),
    )
    history.Equipment = equipment
    history.Status = status_history
    db.add(history)
    db.flush()
    return history


def create_history(db: Session, payload: CreateHistoryDto, actor: Actor) -> History:
    try:
        require_capability(actor, MANAGE_HISTORY)
    except UnauthorizedError:
        HISTORY_LOGGER.warning("History refused user_id=%s reason=missing_capability", actor.user_id)
        raise

    with equipment_write_guard(db, payload.equipmentID):
        try:
            equipment = db.get(Equipment, payload.equipmentID)
            if not equipment:
                raise NotFoundError("Equipment", "id", payload.equipmentID)
            history = record_history(
                db,
                equipment,
                user_id=payload.userID,
                responsible_id=payload.responsibleID,
                status=payload.status_ref,
                date=payload.date,
                created_by=actor.user_id,
            )
            log_audit(
                db,
                "History",
                history.HistoryID,
                "RecordHistory",
                f"equipment={equipment.EquipmentID} status={history.Status.Name}",
                user_id=actor.user_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    HISTORY_LOGGER.info(
        "History recorded history_id=%s equipment_id=%s status=%s user_id=%s",
        history.HistoryID,
        equipment.EquipmentID,
        history.Status.Name,
        actor.user_id,
    )
    return history


def get_history(db: Session, history_id: int) -> History:
    history = db.get(History, history_id)
    if not history:
        raise NotFoundError("History", "id", history_id)
    return history


def list_history(
    db: Session,
    *,
    equipment_id: int | None = None,
    user_id: int | None = None,
    responsible_id: int | None = None,
    status: int | str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 0,
    size: int = 30,
) -> dict:
    stmt = select(History)
    if equipment_id is not None:
        stmt = stmt.where(History.EquipmentID == equipment_id)
    if user_id is not None:
        stmt = stmt.where(History.UserID == user_id)
    if responsible_id is not None:
        stmt = stmt.where(History.ResponsibleID == responsible_id)
    if status is not None:
        stmt = stmt.where(History.StatusHistoryID == resolve_history_status(db, status).StatusHistoryID)
    if date_from is not None:
        date_from = to_naive_utc(date_from)
        stmt = stmt.where(History.Date >= date_from)
    if date_to is not None:
        date_to = to_naive_utc(date_to)
        stmt = stmt.where(History.Date <= date_to)
    stmt = stmt.order_by(History.Date.desc(), History.HistoryID.desc())
    return paginate(db, stmt, page, size, serialize_history)


def serialize_history(history: History) -> dict:
    return {
        "historyID": history.HistoryID,
        "equipmentID": history.EquipmentID,
        "userID": history.UserID,
        "responsibleID": history.ResponsibleID,
        "statusHistoryID": history.StatusHistoryID,
        "statusHistory": history.Status.Name if history.Status else None,
        "date": history.Date,
        "createdBy": history.CreatedBy,
        "createdDate": history.CreatedDate,
    }
