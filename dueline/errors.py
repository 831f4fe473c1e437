"""Error taxonomy for the occurrence engine."""

from datetime import date
from typing import Optional


class EngineError(Exception):
    """Base class for occurrence engine errors."""


class TaskValidationError(EngineError):
    """A task definition cannot produce occurrences (e.g. recurring with no anchor date)."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.task_id = task_id


class PersistenceError(EngineError):
    """A store write failed. In-memory state has already been rolled back."""

    def __init__(self, message: str, task_id: Optional[str] = None, day: Optional[date] = None):
        super().__init__(message)
        self.task_id = task_id
        self.day = day


class NotFoundError(EngineError):
    """The targeted task or record no longer exists."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.task_id = task_id


class CalendarProviderError(EngineError):
    """The external calendar could not be read."""
