"""
Exceptions

Error taxonomy shared by the codec, both store adapters and the reconciler.
"""

from typing import Optional


class CalendarSyncError(Exception):
    """Base exception for vault-calendar-sync."""
    pass


class ValidationError(CalendarSyncError):
    """Bad field type or shape in configuration or a display query."""
    pass


class QueryParsingError(ValidationError):
    """A display query block could not be parsed."""

    def __init__(self, message: str, inner: Optional[Exception] = None):
        super().__init__(message)
        self.inner = inner

    def __str__(self) -> str:
        if self.inner:
            return f"{self.args[0]}: '{self.inner}'"
        return self.args[0]


class MappingError(CalendarSyncError):
    """A todo and a remote event could not be translated into each other."""
    pass


class InvalidTodoError(MappingError):
    """A todo lacks the fields the remote service requires."""
    pass


class InvalidReferenceError(CalendarSyncError):
    """A local edit was requested for a todo without path or blockId."""
    pass


class CalendarApiError(CalendarSyncError):
    """A single remote call failed."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class DeliveryError(CalendarSyncError):
    """A remote mutation still failed after exhausting its retries."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class SetupError(CalendarSyncError):
    """A required collaborator is unavailable at startup."""
    pass
