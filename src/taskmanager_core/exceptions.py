"""Error taxonomy shared by the services and the HTTP layer.

Every business-rule rejection is a TaskManagerError subclass carrying the HTTP
status it maps to. Permission and state-transition errors live next to the
code that raises them (permissions.py, state_machine.py) but share this base.
"""
from typing import Any, Optional


class TaskManagerError(Exception):
    """Base class for typed errors surfaced to the API boundary."""

    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(TaskManagerError):
    """Resource is absent or soft-deleted."""

    status_code = 404
    error = "not_found"

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} with ID {resource_id} not found",
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(TaskManagerError):
    """Duplicate or contradictory data, or a concurrent modification."""

    status_code = 409
    error = "conflict"


class ValidationError(TaskManagerError):
    """Malformed input rejected before any business rule runs."""

    status_code = 400
    error = "validation_error"


class UnauthenticatedError(TaskManagerError):
    """No valid principal could be resolved for the request."""

    status_code = 401
    error = "unauthenticated"
