from __future__ import annotations

import math
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session


MAX_PAGE_SIZE = 30


def paginate(db: Session, stmt, page: int, size: int, serializer: Callable[[Any], dict]) -> dict:
    page = max(int(page), 0)
    size = min(max(int(size), 1), MAX_PAGE_SIZE)
    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar() or 0
    rows = db.execute(stmt.offset(page * size).limit(size)).scalars().all()
    total_pages = math.ceil(total / size) if total else 0
    return {
        "content": [serializer(row) for row in rows],
        "page": page,
        "size": size,
        "totalElements": int(total),
        "totalPages": total_pages,
        "last": page >= total_pages - 1,
    }
