"""SQLAlchemy database models for dueline."""

from datetime import datetime
from typing import Union, TypeVar, Type
import uuid
from sqlalchemy import Column, String, Boolean, Date, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from dueline.database.database import Base
from dueline.models.task import Recurrence, Urgency, NotifyBefore

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"

    # Primary key
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Basic fields
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)

    # Recurrence
    anchor_date = Column(Date, nullable=True, index=True)
    anchor_time = Column(String, nullable=True)
    recurrence = Column(String, nullable=False, default=Recurrence.NONE.value, index=True)
    completed = Column(Boolean, nullable=False, default=False)

    # Pass-through fields
    urgency = Column(String, nullable=False, default=Urgency.NORMAL.value)
    notify = Column(Boolean, nullable=False, default=False)
    notify_before = Column(String, nullable=True)
    shared_with = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Series deletion removes every ledger row for the task.
    completions = relationship("CompletionDB", cascade="all, delete-orphan")
    exceptions = relationship("ExceptionDB", cascade="all, delete-orphan")

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from dueline.models.task import Task, NotifySettings

        notify_before = value_to_enum(self.notify_before, NotifyBefore, None) if self.notify_before else None
        return Task(
            id=self.id,
            title=self.title,
            description=self.description,
            anchor_date=self.anchor_date,
            anchor_time=self.anchor_time,
            recurrence=value_to_enum(self.recurrence, Recurrence, Recurrence.NONE),
            completed=bool(self.completed),
            urgency=value_to_enum(self.urgency, Urgency, Urgency.NORMAL),
            notify_settings=NotifySettings(notify=bool(self.notify), notify_before=notify_before),
            shared_with=self.shared_with or [],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        notify_before = task.notify_settings.notify_before
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            anchor_date=task.anchor_date,
            anchor_time=task.anchor_time,
            recurrence=enum_to_value(task.recurrence),
            completed=task.completed,
            urgency=enum_to_value(task.urgency),
            notify=task.notify_settings.notify,
            notify_before=enum_to_value(notify_before) if notify_before else None,
            shared_with=list(task.shared_with),
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class CompletionDB(Base):
    """Database model for a per-date completion of a recurring task."""

    __tablename__ = "task_completions"
    __table_args__ = (
        UniqueConstraint("task_id", "completed_date", name="uq_task_completion_date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from dueline.models.ledger import CompletionRecord
        return CompletionRecord(
            id=self.id,
            task_id=self.task_id,
            date=self.completed_date,
            created_at=self.created_at,
        )


class ExceptionDB(Base):
    """Database model for a permanently skipped occurrence of a recurring task."""

    __tablename__ = "task_exceptions"
    __table_args__ = (
        UniqueConstraint("task_id", "exception_date", name="uq_task_exception_date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    exception_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from dueline.models.ledger import ExceptionRecord
        return ExceptionRecord(
            id=self.id,
            task_id=self.task_id,
            date=self.exception_date,
            created_at=self.created_at,
        )
