from __future__ import annotations

from typing import Any


class EquipmentMonitoringError(RuntimeError):
    status_code = 400


class NotFoundError(EquipmentMonitoringError):
    status_code = 404

    def __init__(self, resource: str, field: str, value: Any):
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} not found with {field} : '{value}'")


class ConflictError(EquipmentMonitoringError):
    status_code = 409


class UnauthorizedError(EquipmentMonitoringError):
    status_code = 401

    def __init__(self, message: str = "You don't have permission to make this operation"):
        super().__init__(message)
