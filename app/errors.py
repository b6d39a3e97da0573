from __future__ import annotations

from typing import Optional


class ScheduleError(Exception):
    """Base class for errors raised by the setup sheet core."""


class ValidationError(ScheduleError, ValueError):
    """Raised when a record or request is missing required fields."""


class AuthError(ScheduleError):
    """Raised when no bearer token is available or the store rejects it."""


class BreakConflictError(ScheduleError):
    """Raised when an employee already has an active break."""

    def __init__(self, employee_id: str) -> None:
        super().__init__(f"Employee {employee_id} is already on break")
        self.employee_id = employee_id


class PersistError(ScheduleError):
    """Raised when a save or load against the store fails; safe to retry."""

    retryable = True

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
