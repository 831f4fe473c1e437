"""Collaborator interfaces consumed by the occurrence engine.

The SQLAlchemy repositories in `dueline.database` and the Google Calendar client in
`dueline.integrations` satisfy these. Store methods may return plain values or
awaitables; the engine awaits whatever it gets back.
"""

from __future__ import annotations

import inspect
from datetime import date
from typing import Any, Awaitable, List, Protocol, TypeVar, Union

from dueline.models.ledger import CompletionRecord, ExceptionRecord
from dueline.models.occurrence import ExternalEvent
from dueline.models.task import Task

T = TypeVar("T")
MaybeAwaitable = Union[T, Awaitable[T]]


class TaskStore(Protocol):
    def list(self) -> MaybeAwaitable[List[Task]]: ...

    def insert(self, task: Task) -> MaybeAwaitable[Task]: ...

    def update(self, task_id: str, changes: dict) -> MaybeAwaitable[Task]: ...

    def delete(self, task_id: str) -> MaybeAwaitable[None]:
        """Delete a task together with its completion and exception records."""
        ...


class CompletionStore(Protocol):
    def list(self) -> MaybeAwaitable[List[CompletionRecord]]: ...

    def insert(self, task_id: str, day: date) -> MaybeAwaitable[CompletionRecord]: ...

    def delete_by(self, task_id: str, day: date) -> MaybeAwaitable[None]: ...


class ExceptionStore(Protocol):
    def list(self) -> MaybeAwaitable[List[ExceptionRecord]]: ...

    def insert(self, task_id: str, day: date) -> MaybeAwaitable[ExceptionRecord]: ...


class CalendarProvider(Protocol):
    def list_events(self, start: date, end: date) -> List[ExternalEvent]:
        """Read-only events starting in [start, end]."""
        ...


async def call_store(result: Any) -> Any:
    """Await a store call's result if it is awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result
