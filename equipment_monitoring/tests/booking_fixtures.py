import os
import sys
from pathlib import Path


os.environ.setdefault("EQUIPMENT_MONITORING_DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SESSION_SIGNING_SECRET", "x" * 48)
os.environ.setdefault("EQUIPMENT_MONITORING_CREATE_SCHEMA", "false")

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from equipment_monitoring.db.base import Base
from equipment_monitoring.db.session import SessionLocal, engine
from equipment_monitoring.models.equipment_models import Equipment, User
from equipment_monitoring.services.access_service import Actor, set_password
from equipment_monitoring.services.directory_service import (
    resolve_equipment_status,
    resolve_equipment_type,
    resolve_role,
    seed_directories,
)


TEST_PASSWORD = "secret-pass"


def reset_database(bind=None, session_factory=None) -> Session:
    bind = bind or engine
    Base.metadata.drop_all(bind=bind)
    Base.metadata.create_all(bind=bind)
    db = (session_factory or SessionLocal)()
    seed_directories(db)
    db.commit()
    return db


def add_user(db: Session, username: str, role: str = "user") -> User:
    user = User(
        Username=username,
        Email=f"{username}@studio.local",
        RoleID=resolve_role(db, role).RoleID,
        IsActive=True,
    )
    set_password(user, TEST_PASSWORD)
    db.add(user)
    db.commit()
    return user


def add_equipment(db: Session, serial: str, name: str = "Sony A7 III", type_name: str = "camera", status: str = "available") -> Equipment:
    equipment = Equipment(
        Name=name,
        SerialNumber=serial,
        StatusEquipmentID=resolve_equipment_status(db, status).StatusEquipmentID,
        TypeID=resolve_equipment_type(db, type_name).TypeID,
    )
    db.add(equipment)
    db.commit()
    return equipment


def actor_for(db: Session, user: User) -> Actor:
    db.refresh(user)
    return Actor(user_id=user.UserID, username=user.Username, roles=frozenset({user.Role.Name}))


def equipment_status(db: Session, equipment_id: int) -> str:
    db.expire_all()
    return db.get(Equipment, equipment_id).Status.Name


def count_rows(db: Session, model) -> int:
    return int(db.execute(select(func.count()).select_from(model)).scalar() or 0)
