from __future__ import annotations

from datetime import datetime, timezone


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Timestamps are stored naive in UTC.

    Offset-aware input is converted to UTC and stripped; naive input is
    taken to already be UTC.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
