import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _engine_options(db_url: str) -> dict:
    options = {"pool_pre_ping": True, "future": True}
    if db_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in db_url or db_url.rstrip("/").endswith("sqlite:"):
            # One shared connection, otherwise every checkout sees an empty database.
            options["poolclass"] = StaticPool
    return options


EQUIPMENT_MONITORING_DB_URL = _require_env("EQUIPMENT_MONITORING_DB_URL")

engine = create_engine(EQUIPMENT_MONITORING_DB_URL, **_engine_options(EQUIPMENT_MONITORING_DB_URL))

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)
