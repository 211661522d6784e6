from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import Equipment, Reservation, StatusReservation, User
from equipment_monitoring.schemas.reservations import CreateReservationDto, UpdateReservationDto
from equipment_monitoring.services.access_service import MANAGE_RESERVATIONS, RESERVE, Actor, require_capability
from equipment_monitoring.services.audit_service import log_audit
from equipment_monitoring.services.availability_service import find_overlapping, has_overlap
from equipment_monitoring.services.directory_service import resolve_equipment_status, resolve_reservation_status
from equipment_monitoring.services.equipment_locks import equipment_write_guard
from equipment_monitoring.services.errors import (
    ConflictError,
    EquipmentMonitoringError,
    NotFoundError,
    UnauthorizedError,
)
from equipment_monitoring.services.history_service import record_history
from equipment_monitoring.services.lifecycle import (
    CREATE_EQUIPMENT_STATUS,
    RELEASED_EQUIPMENT_STATUS,
    effect_for,
    held_equipment_status,
    is_terminal,
)
from equipment_monitoring.services.paging import paginate
from equipment_monitoring.services.timestamps import to_naive_utc


RESERVATION_LOGGER = logging.getLogger("equipment_monitoring.reservations")


def _require_equipment(db: Session, equipment_id: int) -> Equipment:
    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFoundError("Equipment", "id", equipment_id)
    return equipment


def _require_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User", "id", user_id)
    return user


def _reload_reservation(db: Session, reservation_id: int) -> Reservation | None:
    return db.execute(
        select(Reservation)
        .where(Reservation.ReservationID == reservation_id)
        .execution_options(populate_existing=True)
    ).scalars().first()


def _set_equipment_status(db: Session, equipment: Equipment, status_name: str) -> None:
    status = resolve_equipment_status(db, status_name)
    equipment.Status = status
    equipment.StatusEquipmentID = status.StatusEquipmentID
    equipment.UpdatedDate = datetime.now()


def _release_equipment(db: Session, equipment: Equipment, closed_reservation_id: int) -> None:
    live = db.execute(
        select(StatusReservation.Name)
        .join(Reservation, Reservation.StatusReservationID == StatusReservation.StatusReservationID)
        .where(Reservation.EquipmentID == equipment.EquipmentID)
        .where(Reservation.ReservationID != closed_reservation_id)
    ).scalars().all()
    _set_equipment_status(db, equipment, held_equipment_status(live) or RELEASED_EQUIPMENT_STATUS)


def _require_capability_logged(actor: Actor, capability: str, action: str) -> None:
    try:
        require_capability(actor, capability)
    except UnauthorizedError:
        RESERVATION_LOGGER.warning("%s refused user_id=%s reason=missing_capability", action, actor.user_id)
        raise


def _conflict(equipment_id: int) -> ConflictError:
    return ConflictError(f"Reservation already exists with equipmentId : '{equipment_id}'")


def create_reservation(db: Session, payload: CreateReservationDto, actor: Actor) -> Reservation:
    _require_capability_logged(actor, RESERVE, "CreateReservation")

    with equipment_write_guard(db, payload.equipmentID):
        try:
            equipment = _require_equipment(db, payload.equipmentID)
            if has_overlap(db, equipment.EquipmentID, payload.startDate, payload.endDate):
                RESERVATION_LOGGER.warning(
                    "Reservation conflict equipment_id=%s start=%s end=%s user_id=%s",
                    equipment.EquipmentID,
                    payload.startDate,
                    payload.endDate,
                    actor.user_id,
                )
                raise _conflict(equipment.EquipmentID)

            _require_user(db, payload.userID)
            _require_user(db, payload.responsibleID)
            status = resolve_reservation_status(db, payload.status_ref)
            if is_terminal(status.Name):
                raise EquipmentMonitoringError("Initial status must be pending, confirmed or issued.")

            now = datetime.now()
            reservation = Reservation(
                EquipmentID=equipment.EquipmentID,
                UserID=payload.userID,
                ResponsibleID=payload.responsibleID,
                StartDate=payload.startDate,
                EndDate=payload.endDate,
                StatusReservationID=status.StatusReservationID,
                CreatedBy=actor.user_id,
                CreatedDate=now,
                UpdatedDate=now,
            )
            reservation.Equipment = equipment
            reservation.Status = status
            db.add(reservation)

            _set_equipment_status(db, equipment, CREATE_EQUIPMENT_STATUS)
            db.flush()
            log_audit(
                db,
                "Reservation",
                reservation.ReservationID,
                "CreateReservation",
                f"equipment={equipment.EquipmentID} status={status.Name}",
                user_id=actor.user_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    RESERVATION_LOGGER.info(
        "Reservation created reservation_id=%s equipment_id=%s status=%s user_id=%s",
        reservation.ReservationID,
        equipment.EquipmentID,
        status.Name,
        actor.user_id,
    )
    return reservation


def update_reservation(db: Session, reservation_id: int, payload: UpdateReservationDto, actor: Actor) -> Reservation:
    """Apply a status/interval/equipment change to a reservation.

    Terminal statuses (cancelled, rejected, returned, not_returned) write one
    history row and delete the reservation; the returned object is then a
    tombstone that ``serialize_reservation`` marks with ``deleted``. The
    equipment goes back to available unless another live reservation still
    holds it; ``not_returned`` leaves it issued. Any other status keeps the
    reservation and moves its equipment to reserved or issued.
    """
    _require_capability_logged(actor, MANAGE_RESERVATIONS, "UpdateReservation")

    current = db.get(Reservation, reservation_id)
    if not current:
        raise NotFoundError("Reservation", "id", reservation_id)
    locked_equipment_id = current.EquipmentID

    with equipment_write_guard(db, locked_equipment_id, payload.equipmentID):
        try:
            reservation = _reload_reservation(db, reservation_id)
            if not reservation:
                raise NotFoundError("Reservation", "id", reservation_id)
            if reservation.EquipmentID != locked_equipment_id:
                raise ConflictError("Reservation was modified concurrently, retry the update.")

            equipment = _require_equipment(db, payload.equipmentID)
            if has_overlap(db, equipment.EquipmentID, payload.startDate, payload.endDate, reservation.ReservationID):
                RESERVATION_LOGGER.warning(
                    "Reservation conflict reservation_id=%s equipment_id=%s start=%s end=%s user_id=%s",
                    reservation.ReservationID,
                    equipment.EquipmentID,
                    payload.startDate,
                    payload.endDate,
                    actor.user_id,
                )
                raise _conflict(equipment.EquipmentID)

            old_equipment = reservation.Equipment
            if old_equipment.EquipmentID != equipment.EquipmentID:
                _release_equipment(db, old_equipment, reservation.ReservationID)

            status = resolve_reservation_status(db, payload.status_ref)
            effect = effect_for(status.Name)

            reservation.Equipment = equipment
            reservation.EquipmentID = equipment.EquipmentID
            reservation.StartDate = payload.startDate
            reservation.EndDate = payload.endDate
            reservation.Status = status
            reservation.StatusReservationID = status.StatusReservationID
            reservation.UpdatedDate = datetime.now()

            if effect.writes_history:
                record_history(
                    db,
                    equipment,
                    user_id=reservation.UserID,
                    responsible_id=actor.user_id,
                    status=status.Name,
                    date=reservation.EndDate,
                    created_by=actor.user_id,
                )

            if effect.deletes_reservation:
                db.delete(reservation)
                if effect.equipment_status == RELEASED_EQUIPMENT_STATUS:
                    _release_equipment(db, equipment, reservation.ReservationID)
                else:
                    _set_equipment_status(db, equipment, effect.equipment_status)
                action = "CloseReservation"
            else:
                _set_equipment_status(db, equipment, effect.equipment_status)
                action = "UpdateReservation"

            log_audit(
                db,
                "Reservation",
                reservation.ReservationID,
                action,
                f"equipment={equipment.EquipmentID} status={status.Name}",
                user_id=actor.user_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    RESERVATION_LOGGER.info(
        "Reservation %s reservation_id=%s equipment_id=%s status=%s user_id=%s",
        "closed" if effect.deletes_reservation else "updated",
        reservation.ReservationID,
        equipment.EquipmentID,
        status.Name,
        actor.user_id,
    )
    return reservation


def delete_reservation(db: Session, reservation_id: int, actor: Actor) -> None:
    # Direct deletion frees the equipment but leaves no history entry.
    # Other reservations still holding the equipment keep it reserved or issued.
    _require_capability_logged(actor, MANAGE_RESERVATIONS, "DeleteReservation")

    current = db.get(Reservation, reservation_id)
    if not current:
        raise NotFoundError("Reservation", "id", reservation_id)
    locked_equipment_id = current.EquipmentID

    with equipment_write_guard(db, locked_equipment_id):
        try:
            reservation = _reload_reservation(db, reservation_id)
            if not reservation:
                raise NotFoundError("Reservation", "id", reservation_id)
            if reservation.EquipmentID != locked_equipment_id:
                raise ConflictError("Reservation was modified concurrently, retry the delete.")

            _release_equipment(db, reservation.Equipment, reservation.ReservationID)
            db.delete(reservation)
            log_audit(
                db,
                "Reservation",
                reservation_id,
                "DeleteReservation",
                f"equipment={locked_equipment_id}",
                user_id=actor.user_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    RESERVATION_LOGGER.info(
        "Reservation deleted reservation_id=%s equipment_id=%s user_id=%s",
        reservation_id,
        locked_equipment_id,
        actor.user_id,
    )


def get_reservation(db: Session, reservation_id: int) -> Reservation:
    reservation = db.get(Reservation, reservation_id)
    if not reservation:
        raise NotFoundError("Reservation", "id", reservation_id)
    return reservation


def list_reservations(
    db: Session,
    *,
    equipment_id: int | None = None,
    user_id: int | None = None,
    responsible_id: int | None = None,
    status: int | str | None = None,
    current_at: datetime | None = None,
    page: int = 0,
    size: int = 30,
) -> dict:
    stmt = select(Reservation)
    if equipment_id is not None:
        stmt = stmt.where(Reservation.EquipmentID == equipment_id)
    if user_id is not None:
        stmt = stmt.where(Reservation.UserID == user_id)
    if responsible_id is not None:
        stmt = stmt.where(Reservation.ResponsibleID == responsible_id)
    if status is not None:
        stmt = stmt.where(
            Reservation.StatusReservationID == resolve_reservation_status(db, status).StatusReservationID
        )
    if current_at is not None:
        current_at = to_naive_utc(current_at)
        stmt = stmt.where(Reservation.StartDate <= current_at).where(Reservation.EndDate >= current_at)
    stmt = stmt.order_by(Reservation.StartDate, Reservation.ReservationID)
    return paginate(db, stmt, page, size, serialize_reservation)


def get_equipment_availability(db: Session, equipment_id: int, start_date: datetime, end_date: datetime) -> dict:
    start_date = to_naive_utc(start_date)
    end_date = to_naive_utc(end_date)
    _require_equipment(db, equipment_id)
    overlapping = find_overlapping(db, equipment_id, start_date, end_date)
    return {
        "equipmentID": equipment_id,
        "startDate": start_date,
        "endDate": end_date,
        "available": not overlapping,
        "reservations": [serialize_reservation(item) for item in overlapping],
    }


def serialize_reservation(reservation: Reservation) -> dict:
    state = inspect(reservation)
    return {
        "reservationID": reservation.ReservationID,
        "equipmentID": reservation.EquipmentID,
        "userID": reservation.UserID,
        "responsibleID": reservation.ResponsibleID,
        "startDate": reservation.StartDate,
        "endDate": reservation.EndDate,
        "statusReservationID": reservation.StatusReservationID,
        "statusReservation": reservation.Status.Name if reservation.Status else None,
        "createdBy": reservation.CreatedBy,
        "createdDate": reservation.CreatedDate,
        "updatedDate": reservation.UpdatedDate,
        "deleted": bool(state.deleted or state.was_deleted),
    }
