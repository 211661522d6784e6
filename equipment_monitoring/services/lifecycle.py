from __future__ import annotations

from typing import Iterable, NamedTuple


class ReservationEffect(NamedTuple):
    equipment_status: str | None
    writes_history: bool
    deletes_reservation: bool


TERMINAL_STATUSES = {"cancelled", "rejected", "returned", "not_returned"}

# New reservation status -> what an update to it does to the other entities.
# For terminal rows equipment_status is where the equipment ends up once no
# other live reservation holds it; not_returned keeps it issued regardless.
TRANSITIONS = {
    "pending": ReservationEffect("reserved", False, False),
    "confirmed": ReservationEffect("reserved", False, False),
    "issued": ReservationEffect("issued", False, False),
    "cancelled": ReservationEffect("available", True, True),
    "rejected": ReservationEffect("available", True, True),
    "returned": ReservationEffect("available", True, True),
    "not_returned": ReservationEffect("issued", True, True),
}

# History status -> equipment status written when the event is recorded.
HISTORY_EQUIPMENT_EFFECTS = {
    "not_returned": "issued",
    "returned": "available",
}

CREATE_EQUIPMENT_STATUS = "reserved"
RELEASED_EQUIPMENT_STATUS = "available"


def effect_for(status_name: str) -> ReservationEffect:
    key = (status_name or "").strip().lower()
    if key not in TRANSITIONS:
        raise KeyError(f"Unknown reservation status: {status_name}")
    return TRANSITIONS[key]


def is_terminal(status_name: str) -> bool:
    return (status_name or "").strip().lower() in TERMINAL_STATUSES


def held_equipment_status(live_status_names: Iterable[str]) -> str | None:
    """Equipment status implied by the live reservations still holding it."""
    targets = {effect_for(name).equipment_status for name in live_status_names}
    if not targets:
        return None
    return "issued" if "issued" in targets else CREATE_EQUIPMENT_STATUS
