from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from equipment_monitoring.services.timestamps import to_naive_utc


class _ReservationWindow(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    startDate: datetime
    endDate: datetime
    statusReservationID: Optional[int] = None
    statusReservation: Optional[str] = None

    @field_validator("startDate", "endDate")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def _check_window(self):
        if self.startDate >= self.endDate:
            raise ValueError("startDate must be before endDate.")
        return self

    @property
    def status_ref(self) -> int | str:
        if self.statusReservationID is not None:
            return self.statusReservationID
        return (self.statusReservation or "pending").strip().lower()


class CreateReservationDto(_ReservationWindow):
    userID: int
    responsibleID: int


class UpdateReservationDto(_ReservationWindow):
    @model_validator(mode="after")
    def _require_status(self):
        if self.statusReservationID is None and not (self.statusReservation or "").strip():
            raise ValueError("statusReservationID or statusReservation is required.")
        return self
