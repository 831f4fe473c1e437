"""Instance-vs-series deletion of tasks.

One-off tasks are deleted directly. Recurring tasks need a choice: skip just the
selected occurrence, or delete the whole series together with its completion and
exception records.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Optional

from dueline.engine.ledgers import CompletionLedger, ExceptionLedger
from dueline.engine.tasks import TaskBook
from dueline.errors import TaskValidationError
from dueline.models.task import Task
from dueline.recurrence.generator import matches

logger = logging.getLogger(__name__)


class DeletionMode(str, Enum):
    """What a delete request on a task requires."""
    DIRECT_DELETE = "direct_delete"
    PROMPT_REQUIRED = "prompt_required"


class DeletionChoice(str, Enum):
    """Answer to the prompt for recurring tasks."""
    OCCURRENCE = "occurrence"
    SERIES = "series"


class DeletionOutcome(str, Enum):
    TASK_DELETED = "task_deleted"
    OCCURRENCE_EXCLUDED = "occurrence_excluded"
    SERIES_DELETED = "series_deleted"
    NOT_FOUND = "not_found"


def plan(task: Task) -> DeletionMode:
    return DeletionMode.PROMPT_REQUIRED if task.is_recurring else DeletionMode.DIRECT_DELETE


class DeletionCoordinator:
    def __init__(self, tasks: TaskBook, completions: CompletionLedger, exceptions: ExceptionLedger):
        self.tasks = tasks
        self.completions = completions
        self.exceptions = exceptions

    async def delete(
        self,
        task_id: str,
        choice: Optional[DeletionChoice] = None,
        day: Optional[date] = None,
    ) -> DeletionOutcome:
        """Run a delete request to its terminal action.

        Raises:
            TaskValidationError: recurring task without a choice, or an occurrence
                choice without a date.
            PersistenceError: the store rejected the write; local state is unchanged.
        """
        task = self.tasks.get(task_id)
        if task is None:
            return DeletionOutcome.NOT_FOUND

        if plan(task) == DeletionMode.DIRECT_DELETE:
            await self.tasks.remove(task_id)
            logger.debug(f"Deleted one-off task {task_id}")
            return DeletionOutcome.TASK_DELETED

        if choice is None:
            raise TaskValidationError(
                f"Task {task_id} recurs {task.recurrence}; choose 'occurrence' or 'series'", task_id=task_id
            )
        choice = DeletionChoice(choice)

        if choice == DeletionChoice.OCCURRENCE:
            if day is None:
                raise TaskValidationError(f"Deleting one occurrence of {task_id} needs a date", task_id=task_id)
            if not matches(task, day):
                logger.debug(f"Task {task_id} has no occurrence on {day.isoformat()}")
                return DeletionOutcome.NOT_FOUND
            await self.exceptions.exclude_occurrence(task_id, day)
            logger.debug(f"Excluded occurrence {task_id} on {day.isoformat()}")
            return DeletionOutcome.OCCURRENCE_EXCLUDED

        await self.delete_series(task_id)
        return DeletionOutcome.SERIES_DELETED

    async def delete_series(self, task_id: str) -> None:
        """Delete a task and every completion/exception for it.

        Not optimistic: the task stays in the view until the store confirms.
        """
        await self.tasks.remove(task_id)
        dropped = self.completions.discard_task(task_id) + self.exceptions.discard_task(task_id)
        logger.debug(f"Deleted series {task_id} ({dropped} ledger records)")
