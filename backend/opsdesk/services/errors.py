"""Domain exceptions shared by the workday engines, record stores and routes."""
from typing import Optional


class WorkdayError(Exception):
    """Base class for every error raised by the workday engine."""


class ValidationError(WorkdayError, ValueError):
    """
    Rejected input. Raised before any persistence call is made, so the
    caller's state is untouched.

    ``field`` names the offending input when there is one.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"field": self.field, "detail": self.message}


class NotFoundError(WorkdayError, LookupError):
    """A record referenced by id does not exist in the store."""

    def __init__(self, entity: str, key: str) -> None:
        super().__init__(f"{entity} '{key}' not found")
        self.entity = entity
        self.key = key


class PersistenceError(WorkdayError):
    """The record store call failed (network, availability, constraint)."""

    USER_MESSAGE = "Operation failed, please retry"

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        detail = f"{operation} failed"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)
        self.operation = operation
        self.cause = cause
