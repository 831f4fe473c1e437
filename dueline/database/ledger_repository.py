"""Repositories for per-occurrence completion and exception records."""

import logging
from datetime import date
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dueline.errors import NotFoundError
from dueline.models.ledger import CompletionRecord, ExceptionRecord
from dueline.database.models import CompletionDB, ExceptionDB, TaskDB

logger = logging.getLogger(__name__)


def _require_task(db: Session, task_id: str) -> None:
    if db.query(TaskDB.id).filter(TaskDB.id == task_id).first() is None:
        raise NotFoundError(f"Task {task_id} not found", task_id=task_id)


class CompletionRepository:
    """Completion records (satisfies the engine's CompletionStore)."""

    def __init__(self, db: Session):
        self.db = db

    def list(self) -> List[CompletionRecord]:
        rows = self.db.query(CompletionDB).order_by(CompletionDB.completed_date).all()
        return [row.to_pydantic() for row in rows]

    def insert(self, task_id: str, day: date) -> CompletionRecord:
        """Record a completion. Idempotent: an existing record is returned as-is.

        Raises:
            NotFoundError: if the task does not exist
        """
        existing = (
            self.db.query(CompletionDB)
            .filter(CompletionDB.task_id == task_id, CompletionDB.completed_date == day)
            .first()
        )
        if existing is not None:
            return existing.to_pydantic()
        _require_task(self.db, task_id)

        row = CompletionDB(task_id=task_id, completed_date=day)
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created completion {task_id} on {day.isoformat()}")
            return row.to_pydantic()
        except IntegrityError:
            # Lost a race with another writer for the same (task, date).
            self.db.rollback()
            existing = (
                self.db.query(CompletionDB)
                .filter(CompletionDB.task_id == task_id, CompletionDB.completed_date == day)
                .first()
            )
            if existing is None:
                raise
            return existing.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create completion {task_id} on {day.isoformat()}: {type(e).__name__}: {str(e)}")
            raise

    def delete_by(self, task_id: str, day: date) -> None:
        """Remove a completion. Missing records are ignored."""
        try:
            deleted = (
                self.db.query(CompletionDB)
                .filter(CompletionDB.task_id == task_id, CompletionDB.completed_date == day)
                .delete(synchronize_session=False)
            )
            self.db.commit()
            logger.debug(f"Deleted {deleted} completion(s) {task_id} on {day.isoformat()}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete completion {task_id} on {day.isoformat()}: {type(e).__name__}: {str(e)}")
            raise

    def list_for_task(self, task_id: str) -> List[CompletionRecord]:
        rows = (
            self.db.query(CompletionDB)
            .filter(CompletionDB.task_id == task_id)
            .order_by(CompletionDB.completed_date)
            .all()
        )
        return [row.to_pydantic() for row in rows]


class ExceptionRepository:
    """Exception records (satisfies the engine's ExceptionStore).

    There is deliberately no delete: exceptions only disappear with their task.
    """

    def __init__(self, db: Session):
        self.db = db

    def list(self) -> List[ExceptionRecord]:
        rows = self.db.query(ExceptionDB).order_by(ExceptionDB.exception_date).all()
        return [row.to_pydantic() for row in rows]

    def insert(self, task_id: str, day: date) -> ExceptionRecord:
        """Record an exception. Idempotent: an existing record is returned as-is.

        Raises:
            NotFoundError: if the task does not exist
        """
        existing = (
            self.db.query(ExceptionDB)
            .filter(ExceptionDB.task_id == task_id, ExceptionDB.exception_date == day)
            .first()
        )
        if existing is not None:
            return existing.to_pydantic()
        _require_task(self.db, task_id)

        row = ExceptionDB(task_id=task_id, exception_date=day)
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created exception {task_id} on {day.isoformat()}")
            return row.to_pydantic()
        except IntegrityError:
            self.db.rollback()
            existing = (
                self.db.query(ExceptionDB)
                .filter(ExceptionDB.task_id == task_id, ExceptionDB.exception_date == day)
                .first()
            )
            if existing is None:
                raise
            return existing.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create exception {task_id} on {day.isoformat()}: {type(e).__name__}: {str(e)}")
            raise

    def list_for_task(self, task_id: str) -> List[ExceptionRecord]:
        rows = (
            self.db.query(ExceptionDB)
            .filter(ExceptionDB.task_id == task_id)
            .order_by(ExceptionDB.exception_date)
            .all()
        )
        return [row.to_pydantic() for row in rows]
