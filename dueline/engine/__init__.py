"""Occurrence engine for dueline."""

from dueline.engine.calendar import DayIndex, build_day_index, sort_day_items
from dueline.engine.deletion import DeletionChoice, DeletionCoordinator, DeletionMode, DeletionOutcome, plan
from dueline.engine.ledgers import CompletionLedger, ExceptionLedger, KeyedLocks
from dueline.engine.reminders import Reminder, due_reminders, reminder_time
from dueline.engine.service import OccurrenceService, OperationResult
from dueline.engine.tasks import TaskBook

__all__ = [
    "DayIndex",
    "build_day_index",
    "sort_day_items",
    "DeletionChoice",
    "DeletionCoordinator",
    "DeletionMode",
    "DeletionOutcome",
    "plan",
    "CompletionLedger",
    "ExceptionLedger",
    "KeyedLocks",
    "Reminder",
    "due_reminders",
    "reminder_time",
    "OccurrenceService",
    "OperationResult",
    "TaskBook",
]
