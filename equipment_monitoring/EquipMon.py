import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

load_dotenv()

from equipment_monitoring.db.base import Base
from equipment_monitoring.db.deps import get_db
from equipment_monitoring.db.session import SessionLocal, engine
from equipment_monitoring.schemas.auth import AuthLoginRequest
from equipment_monitoring.schemas.equipment import EquipmentUpsert
from equipment_monitoring.schemas.history import CreateHistoryDto
from equipment_monitoring.schemas.reservations import CreateReservationDto, UpdateReservationDto
from equipment_monitoring.services.access_service import (
    Actor,
    authenticate_user,
    build_session_payload,
    create_session,
    get_session,
    remove_session,
)
from equipment_monitoring.services.audit_service import log_audit
from equipment_monitoring.services.directory_service import seed_directories
from equipment_monitoring.services.equipment_service import (
    create_equipment,
    delete_equipment,
    get_equipment,
    list_equipment,
    serialize_equipment,
    update_equipment,
)
from equipment_monitoring.services.errors import EquipmentMonitoringError
from equipment_monitoring.services.history_service import create_history, get_history, list_history, serialize_history
from equipment_monitoring.services.paging import MAX_PAGE_SIZE
from equipment_monitoring.services.reservation_service import (
    create_reservation,
    delete_reservation,
    get_equipment_availability,
    get_reservation,
    list_reservations,
    serialize_reservation,
    update_reservation,
)
from equipment_monitoring.services.timestamps import to_naive_utc


logging.basicConfig(
    level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
AUTH_LOGGER = logging.getLogger("equipment_monitoring.auth")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _env_flag(name: str, default: str) -> bool:
    return str(os.environ.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


def init_schema() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_directories(db)
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if _env_flag("EQUIPMENT_MONITORING_CREATE_SCHEMA", "true"):
        init_schema()
    yield


app = FastAPI(title="Equipment Monitoring", lifespan=lifespan)

_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:3000,http://localhost:3000",
)
_CORS_ALLOW_CREDENTIALS = _env_flag("CORS_ALLOW_CREDENTIALS", "true")
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

_APP_SESSION_SECRET = (os.environ.get("SESSION_SIGNING_SECRET") or "").strip()
if len(_APP_SESSION_SECRET) < 32:
    raise RuntimeError("SESSION_SIGNING_SECRET must be set and at least 32 characters long.")
app.add_middleware(
    SessionMiddleware,
    secret_key=_APP_SESSION_SECRET,
    session_cookie="equipment_monitoring_session",
    same_site="lax",
    https_only=False,
)


@app.exception_handler(EquipmentMonitoringError)
async def _handle_domain_error(_request: Request, exc: EquipmentMonitoringError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": str(exc)})


def _get_active_session(request: Request, session_token: str | None) -> dict | None:
    session_from_token = get_session(session_token)
    if session_from_token:
        return dict(session_from_token)
    session_from_cookie = request.session.get("user")
    if isinstance(session_from_cookie, dict) and get_session(session_from_cookie.get("token")):
        return dict(session_from_cookie)
    return None


def _require_actor(request: Request, session_token: str | None) -> Actor:
    session = _get_active_session(request, session_token)
    if not session:
        raise HTTPException(status_code=401, detail="Not logged in.")
    return Actor.from_session(session)


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.post("/api/auth/login")
def auth_login(payload: dict, request: Request, db: Session = Depends(get_db)):
    try:
        parsed = AuthLoginRequest.model_validate(payload)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid login request.")

    username = str(parsed.username or "").strip().lower()
    if not username:
        raise HTTPException(status_code=400, detail="Invalid login request.")

    user = authenticate_user(db, username, str(parsed.password or ""))
    if not user:
        AUTH_LOGGER.warning("Login failed username=%s", username)
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    session_payload = build_session_payload(user)
    token = create_session(session_payload)
    request.session["user"] = {**session_payload, "token": token}
    log_audit(db, "Auth", user.UserID, "LoginSuccess", f"username={username}", user_id=user.UserID)
    db.commit()
    AUTH_LOGGER.info("Login success username=%s user_id=%s", username, user.UserID)
    return {"sessionToken": token, "user": session_payload}


@app.post("/api/auth/logout")
def auth_logout(request: Request, x_session_token: str | None = Header(None, alias="X-Session-Token")):
    cookie_session = request.session.get("user")
    if isinstance(cookie_session, dict):
        remove_session(cookie_session.get("token"))
    request.session.clear()
    remove_session(x_session_token)
    return {"ok": True}


@app.get("/api/auth/me")
def auth_me(request: Request, x_session_token: str | None = Header(None, alias="X-Session-Token")):
    session = _get_active_session(request, x_session_token)
    if not session:
        raise HTTPException(status_code=401, detail="Not logged in.")
    session.pop("token", None)
    return {"user": session}


@app.get("/api/equipment")
def get_equipment_list(
    status: str | None = Query(None),
    equipment_type: str | None = Query(None, alias="type"),
    page: int = Query(0, ge=0),
    size: int = Query(30, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    return list_equipment(db, status=status, type_ref=equipment_type, page=page, size=size)


@app.get("/api/equipment/{equipment_id}")
def get_equipment_item(equipment_id: int, db: Session = Depends(get_db)):
    return serialize_equipment(get_equipment(db, equipment_id))


@app.post("/api/equipment", status_code=201)
def create_equipment_item(
    request: Request,
    payload: EquipmentUpsert,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    actor = _require_actor(request, x_session_token)
    return serialize_equipment(create_equipment(db, payload, actor))


@app.put("/api/equipment/{equipment_id}")
def update_equipment_item(
    request: Request,
    equipment_id: int,
    payload: EquipmentUpsert,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    actor = _require_actor(request, x_session_token)
    return serialize_equipment(update_equipment(db, equipment_id, payload, actor))


@app.delete("/api/equipment/{equipment_id}")
def delete_equipment_item(
    request: Request,
    equipment_id: int,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    actor = _require_actor(request, x_session_token)
    delete_equipment(db, equipment_id, actor)
    return {"success": True, "message": "Equipment deleted"}


@app.get("/api/equipment/{equipment_id}/availability")
def get_availability(
    equipment_id: int,
    start: datetime = Query(...),
    end: datetime = Query(...),
    db: Session = Depends(get_db),
):
    start = to_naive_utc(start)
    end = to_naive_utc(end)
    if start >= end:
        raise HTTPException(status_code=400, detail="start must be before end.")
    return get_equipment_availability(db, equipment_id, start, end)


@app.get("/api/reservations")
def get_reservations(
    equipment_id: int | None = Query(None, alias="equipmentID"),
    user_id: int | None = Query(None, alias="userID"),
    responsible_id: int | None = Query(None, alias="responsibleID"),
    status: str | None = Query(None),
    current_at: datetime | None = Query(None, alias="currentAt"),
    page: int = Query(0, ge=0),
    size: int = Query(30, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    return list_reservations(
        db,
        equipment_id=equipment_id,
        user_id=user_id,
        responsible_id=responsible_id,
        status=status,
        current_at=to_naive_utc(current_at),
        page=page,
        size=size,
    )


@app.get("/api/reservations/{reservation_id}")
def get_reservation_item(reservation_id: int, db: Session = Depends(get_db)):
    return serialize_reservation(get_reservation(db, reservation_id))


@app.post("/api/reservations", status_code=201)
def create_reservation_item(
    request: Request,
    payload: CreateReservationDto,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    actor = _require_actor(request, x_session_token)
    return serialize_reservation(create_reservation(db, payload, actor))


@app.put("/api/reservations/{reservation_id}")
def update_reservation_item(
    request: Request,
    reservation_id: int,
    payload: UpdateReservationDto,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    actor = _require_actor(request, x_session_token)
    return serialize_reservation(update_reservation(db, reservation_id, payload, actor))


@app.delete("/api/reservations/{reservation_id}")
def delete_reservation_item(
    request: Request,
    reservation_id: int,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    actor = _require_actor(request, x_session_token)
    delete_reservation(db, reservation_id, actor)
    return {"success": True, "message": "Reservation deleted"}


@app.get("/api/history")
def get_history_list(
    equipment_id: int | None = Query(None, alias="equipmentID"),
    user_id: int | None = Query(None, alias="userID"),
    responsible_id: int | None = Query(None, alias="responsibleID"),
    status: str | None = Query(None),
    date_from: datetime | None = Query(None, alias="from"),
    date_to: datetime | None = Query(None, alias="to"),
    page: int = Query(0, ge=0),
    size: int = Query(30, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    return list_history(
        db,
        equipment_id=equipment_id,
        user_id=user_id,
        responsible_id=responsible_id,
        status=status,
        date_from=to_naive_utc(date_from),
        date_to=to_naive_utc(date_to),
        page=page,
        size=size,
    )


@app.get("/api/history/{history_id}")
def get_history_item(history_id: int, db: Session = Depends(get_db)):
    return serialize_history(get_history(db, history_id))


@app.post("/api/history", status_code=201)
def create_history_item(
    request: Request,
    payload: CreateHistoryDto,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    actor = _require_actor(request, x_session_token)
    return serialize_history(create_history(db, payload, actor))
