"""Per-equipment write guard.

Every unit of work that checks availability and then writes reservation,
equipment or history rows holds the guard for all equipment it touches until
it has committed or rolled back. The in-process lock serializes writers of one
worker; the ``FOR UPDATE`` row lock serializes writers across workers on
databases that support it (SQLite ignores it and relies on the process lock).
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import Equipment


_REGISTRY_LOCK = threading.Lock()
_EQUIPMENT_LOCKS: dict[int, threading.Lock] = {}


def _lock_for(equipment_id: int) -> threading.Lock:
    with _REGISTRY_LOCK:
        lock = _EQUIPMENT_LOCKS.get(equipment_id)
        if lock is None:
            lock = threading.Lock()
            _EQUIPMENT_LOCKS[equipment_id] = lock
        return lock


@contextmanager
def equipment_write_guard(db: Session, *equipment_ids: int | None) -> Iterator[None]:
    ids = sorted({int(value) for value in equipment_ids if value is not None})
    locks = [_lock_for(equipment_id) for equipment_id in ids]
    acquired: list[threading.Lock] = []
    try:
        for lock in locks:
            lock.acquire()
            acquired.append(lock)
        if ids:
            db.execute(
                select(Equipment.EquipmentID)
                .where(Equipment.EquipmentID.in_(ids))
                .order_by(Equipment.EquipmentID)
                .with_for_update()
            ).all()
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()
