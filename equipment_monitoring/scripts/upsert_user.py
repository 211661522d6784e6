#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from equipment_monitoring.db.base import Base
from equipment_monitoring.models.equipment_models import User
from equipment_monitoring.services.access_service import set_password
from equipment_monitoring.services.directory_service import ROLE_NAMES, resolve_role, seed_directories


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create/update one Users record directly from terminal.",
    )
    parser.add_argument("--username", required=True, help="Login name (stored lower-case)")
    parser.add_argument("--email", default=None, help="E-mail; required when creating a user")
    parser.add_argument("--role", choices=list(ROLE_NAMES), default="admin")
    parser.add_argument("--password", default=None, help="Password to set. Omit to keep the existing one.")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables and seed status dictionaries first.",
    )
    parser.add_argument(
        "--db-url",
        default=os.environ.get("EQUIPMENT_MONITORING_DB_URL", "").strip(),
        help="SQLAlchemy DB URL; defaults to EQUIPMENT_MONITORING_DB_URL env var.",
    )
    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    username = args.username.strip().lower()
    if not username:
        parser.error("--username must not be empty")
    if not args.db_url:
        parser.error("Missing DB URL. Set EQUIPMENT_MONITORING_DB_URL or pass --db-url.")

    engine = create_engine(args.db_url, pool_pre_ping=True, future=True)
    if args.create_schema:
        Base.metadata.create_all(bind=engine)

    with Session(engine) as db:
        if args.create_schema:
            seed_directories(db)
        role = resolve_role(db, args.role)
        user = db.execute(select(User).where(User.Username == username)).scalars().first()
        if user is None:
            if not args.email:
                parser.error("--email is required when creating a new user.")
            if args.password is None:
                parser.error("--password is required when creating a new user.")
            user = User(Username=username, Email=args.email.strip().lower(), IsActive=True)
            db.add(user)
        elif args.email:
            user.Email = args.email.strip().lower()

        user.RoleID = role.RoleID
        if args.password is not None:
            try:
                set_password(user, args.password)
            except ValueError as exc:
                parser.error(str(exc))
        db.commit()
        print(f"OK user_id={user.UserID} username={user.Username} role={role.Name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
