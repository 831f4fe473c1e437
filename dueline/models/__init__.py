"""Data models for dueline."""

from dueline.models.task import Task, TaskUpdate, Recurrence, Urgency, NotifyBefore, NotifySettings
from dueline.models.ledger import CompletionRecord, ExceptionRecord, OccurrenceKey
from dueline.models.occurrence import (
    CalendarItem,
    CalendarView,
    ExternalEvent,
    ExternalIdentity,
    Identity,
    InstanceIdentity,
    ItemKind,
    Occurrence,
    OccurrenceState,
    StableIdentity,
)

__all__ = [
    "Task",
    "TaskUpdate",
    "Recurrence",
    "Urgency",
    "NotifyBefore",
    "NotifySettings",
    "CompletionRecord",
    "ExceptionRecord",
    "OccurrenceKey",
    "CalendarItem",
    "CalendarView",
    "ExternalEvent",
    "ExternalIdentity",
    "Identity",
    "InstanceIdentity",
    "ItemKind",
    "Occurrence",
    "OccurrenceState",
    "StableIdentity",
]
