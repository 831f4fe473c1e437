"""Repository layer for task database operations."""

import logging
from datetime import datetime
from typing import List, Optional
from pydantic import ValidationError
from sqlalchemy.orm import Session
from sqlalchemy import desc

from dueline.errors import NotFoundError, TaskValidationError
from dueline.models.task import Task
from dueline.database.models import TaskDB

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for Task database operations (satisfies the engine's TaskStore)."""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, task: Task) -> Task:
        """Create a new task."""
        try:
            task_db = TaskDB.from_pydantic(task)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, task_id: str) -> Optional[Task]:
        """Get task by ID."""
        task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
        return task_db.to_pydantic() if task_db else None

    def list(self) -> List[Task]:
        """Get all tasks sorted by creation date (newest first).

        Rows that no longer validate (e.g. a malformed anchor_time written by another
        client) are skipped with a warning instead of failing the whole listing.
        """
        tasks_db = self.db.query(TaskDB).order_by(desc(TaskDB.created_at)).all()
        tasks: List[Task] = []
        for task_db in tasks_db:
            try:
                tasks.append(task_db.to_pydantic())
            except ValidationError as e:
                logger.warning(f"Skipping invalid task row {task_db.id}: {e.error_count()} validation error(s)")
        return tasks

    def update(self, task_id: str, changes: dict) -> Task:
        """Apply a partial update to a task.

        Raises:
            NotFoundError: if the task does not exist
            TaskValidationError: if the merged task does not validate
        """
        task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
        if not task_db:
            raise NotFoundError(f"Task {task_id} not found", task_id=task_id)

        current = task_db.to_pydantic()
        try:
            updated = Task.model_validate(
                {**current.model_dump(), **changes, "id": task_id, "updated_at": datetime.utcnow()}
            )
        except ValidationError as e:
            raise TaskValidationError(f"Invalid update for task {task_id}: {str(e)}", task_id=task_id) from e
        fresh = TaskDB.from_pydantic(updated)

        # Update all mutable fields
        task_db.title = fresh.title
        task_db.description = fresh.description
        task_db.anchor_date = fresh.anchor_date
        task_db.anchor_time = fresh.anchor_time
        task_db.recurrence = fresh.recurrence
        task_db.completed = fresh.completed
        task_db.urgency = fresh.urgency
        task_db.notify = fresh.notify
        task_db.notify_before = fresh.notify_before
        task_db.shared_with = fresh.shared_with
        task_db.updated_at = fresh.updated_at

        try:
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Updated task {task_id}: {updated.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, task_id: str) -> None:
        """Permanently delete a task together with its completions and exceptions.

        Raises:
            NotFoundError: if the task does not exist
        """
        task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
        if not task_db:
            raise NotFoundError(f"Task {task_id} not found", task_id=task_id)

        try:
            self.db.delete(task_db)
            self.db.commit()
            logger.debug(f"Deleted task {task_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise
