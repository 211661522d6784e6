from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from equipment_monitoring.services.timestamps import to_naive_utc


class CreateHistoryDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    userID: int
    responsibleID: int
    statusHistoryID: Optional[int] = None
    statusHistory: Optional[str] = None
    date: datetime

    @field_validator("date")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def _require_status(self):
        if self.statusHistoryID is None and not (self.statusHistory or "").strip():
            raise ValueError("statusHistoryID or statusHistory is required.")
        return self

    @property
    def status_ref(self) -> int | str:
        if self.statusHistoryID is not None:
            return self.statusHistoryID
        return (self.statusHistory or "").strip().lower()
