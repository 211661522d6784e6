from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from equipment_monitoring.models.equipment_models import User
from equipment_monitoring.services.errors import UnauthorizedError


SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS") or 60 * 60 * 12)

RESERVE = "reserve"
MANAGE_RESERVATIONS = "manageReservations"
MANAGE_HISTORY = "manageHistory"
MANAGE_EQUIPMENT = "manageEquipment"

RIGHTS_BY_ROLE = {
    "admin": {
        RESERVE: True,
        MANAGE_RESERVATIONS: True,
        MANAGE_HISTORY: True,
        MANAGE_EQUIPMENT: True,
    },
    "studio": {
        RESERVE: True,
        MANAGE_RESERVATIONS: True,
        MANAGE_HISTORY: True,
        MANAGE_EQUIPMENT: True,
    },
    "user": {
        RESERVE: True,
        MANAGE_RESERVATIONS: False,
        MANAGE_HISTORY: False,
        MANAGE_EQUIPMENT: False,
    },
}

_LOCK = threading.Lock()
_REVOKED_TOKENS: dict[str, float] = {}
_SESSION_SECRET: bytes | None = None


@dataclass(frozen=True)
class Actor:
    user_id: int
    username: str = ""
    roles: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_session(cls, payload: dict[str, Any]) -> "Actor":
        return cls(
            user_id=int(payload.get("userID") or 0),
            username=str(payload.get("username") or ""),
            roles=frozenset(str(role).strip().lower() for role in payload.get("roles") or []),
        )


def has_capability(roles: Iterable[str], capability: str) -> bool:
    for role in roles or ():
        rights = RIGHTS_BY_ROLE.get(str(role).strip().lower())
        if rights and rights.get(capability):
            return True
    return False


def require_capability(actor: Actor, capability: str) -> None:
    if not has_capability(actor.roles, capability):
        raise UnauthorizedError()


def password_hash(password: str, salt: str) -> str:
    raw = hashlib.pbkdf2_hmac(
        "sha256",
        (password or "").encode("utf-8"),
        salt.encode("utf-8"),
        120000,
    )
    return raw.hex()


def set_password(user: User, password: str) -> None:
    trimmed = str(password or "").strip()
    if len(trimmed) < 6:
        raise ValueError("Password must be at least 6 characters.")
    salt = secrets.token_hex(16)
    user.PasswordSalt = salt
    user.PasswordHash = password_hash(trimmed, salt)


def authenticate_user(db: Session, username: str, password: str) -> User | None:
    key = (username or "").strip().lower()
    if not key:
        return None
    user = db.execute(select(User).where(User.Username == key)).scalars().first()
    if not user or not user.IsActive or not user.PasswordHash or not user.PasswordSalt:
        return None
    candidate = password_hash((password or "").strip(), user.PasswordSalt)
    if not hmac.compare_digest(candidate, user.PasswordHash):
        return None
    return user


def build_session_payload(user: User) -> dict[str, Any]:
    role_name = user.Role.Name if user.Role else "user"
    return {
        "userID": user.UserID,
        "username": user.Username,
        "roles": [role_name],
        "rights": dict(RIGHTS_BY_ROLE.get(role_name, RIGHTS_BY_ROLE["user"])),
    }


def _session_secret() -> bytes:
    global _SESSION_SECRET
    if _SESSION_SECRET is None:
        raw = (os.environ.get("SESSION_SIGNING_SECRET") or "").strip()
        if len(raw) < 32:
            raise RuntimeError("SESSION_SIGNING_SECRET must be set and at least 32 characters long.")
        _SESSION_SECRET = raw.encode("utf-8")
    return _SESSION_SECRET


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(encoded: str) -> bytes:
    return base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))


def create_session(payload: dict[str, Any]) -> str:
    session_payload = dict(payload)
    session_payload["expiresAt"] = time.time() + SESSION_TTL_SECONDS
    body = json.dumps(session_payload, ensure_ascii=True, separators=(",", ":")).encode("utf-8")
    encoded = _b64encode(body)
    signature = hmac.new(_session_secret(), encoded.encode("ascii"), hashlib.sha256).digest()
    return f"{encoded}.{_b64encode(signature)}"


def get_session(token: str | None) -> dict[str, Any] | None:
    if not token:
        return None
    now = time.time()
    try:
        encoded, encoded_sig = token.split(".", 1)
        expected_sig = hmac.new(_session_secret(), encoded.encode("ascii"), hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, _b64decode(encoded_sig)):
            return None
        decoded = json.loads(_b64decode(encoded).decode("utf-8"))
    except (ValueError, UnicodeError, json.JSONDecodeError):
        return None

    if not isinstance(decoded, dict):
        return None
    if now >= float(decoded.get("expiresAt") or 0.0):
        return None

    with _LOCK:
        for revoked_token, revoked_exp in list(_REVOKED_TOKENS.items()):
            if now >= revoked_exp:
                _REVOKED_TOKENS.pop(revoked_token, None)
        if token in _REVOKED_TOKENS:
            return None
    return decoded


def remove_session(token: str | None) -> None:
    session = get_session(token)
    if not session:
        return
    with _LOCK:
        _REVOKED_TOKENS[token] = float(session.get("expiresAt") or time.time() + SESSION_TTL_SECONDS)
