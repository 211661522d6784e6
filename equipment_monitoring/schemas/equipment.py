from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class EquipmentUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    serialNumber: Optional[str] = None
    typeID: Optional[int] = None
    type: Optional[str] = None

    @model_validator(mode="after")
    def _require_type(self):
        if self.typeID is None and not (self.type or "").strip():
            raise ValueError("typeID or type is required.")
        if not self.name.strip():
            raise ValueError("name must not be empty.")
        return self

    @property
    def type_ref(self) -> int | str:
        if self.typeID is not None:
            return self.typeID
        return (self.type or "").strip().lower()
