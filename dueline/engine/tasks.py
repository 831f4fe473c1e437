"""In-memory view of task definitions backed by a TaskStore.

Unlike the ledgers, task writes are confirm-then-apply: the local view only changes
after the store accepts the write.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from dueline.engine.ports import TaskStore, call_store
from dueline.errors import NotFoundError, PersistenceError, TaskValidationError
from dueline.models.task import Task, TaskUpdate

logger = logging.getLogger(__name__)


class TaskBook:
    """Task definitions keyed by ID, kept in store order (newest first)."""

    def __init__(self, store: TaskStore):
        self.store = store
        self.version = 0
        self._tasks: Dict[str, Task] = {}

    async def load(self) -> int:
        tasks = await call_store(self.store.list())
        self._tasks = {t.id: t for t in tasks}
        self.version += 1
        logger.debug(f"Loaded {len(self._tasks)} tasks")
        return len(self._tasks)

    def all(self) -> List[Task]:
        return list(self._tasks.values())

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def add(self, task: Task) -> Task:
        try:
            saved = await call_store(self.store.insert(task))
        except Exception as e:
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to create task {task.id}", task_id=task.id) from e
        self._tasks = {saved.id: saved, **self._tasks}
        self.version += 1
        return saved

    async def update(self, task_id: str, changes: Union[TaskUpdate, dict]) -> Optional[Task]:
        """Apply a partial update. Returns None if the task no longer exists.

        Raises:
            TaskValidationError: the update would leave the task invalid; nothing changed.
            PersistenceError: the store rejected the write.
        """
        if isinstance(changes, TaskUpdate):
            changes = changes.changes()
        try:
            saved = await call_store(self.store.update(task_id, changes))
        except NotFoundError:
            logger.debug(f"Task {task_id} no longer exists; dropping it from the view")
            self.forget(task_id)
            return None
        except TaskValidationError:
            raise
        except Exception as e:
            logger.error(f"Failed to update task {task_id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to update task {task_id}", task_id=task_id) from e
        if task_id in self._tasks:
            self._tasks[task_id] = saved
        else:
            self._tasks = {saved.id: saved, **self._tasks}
        self.version += 1
        return saved

    async def remove(self, task_id: str) -> None:
        """Delete a task (and, store-side, its ledger rows). Missing tasks are fine."""
        try:
            await call_store(self.store.delete(task_id))
        except NotFoundError:
            logger.debug(f"Task {task_id} was already deleted")
        except Exception as e:
            logger.error(f"Failed to delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to delete task {task_id}", task_id=task_id) from e
        self.forget(task_id)

    def forget(self, task_id: str) -> None:
        if self._tasks.pop(task_id, None) is not None:
            self.version += 1
