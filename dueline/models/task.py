"""Task data model for dueline."""

from datetime import date, datetime
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator

from dueline.models.constants import TIME_OF_DAY_PATTERN


class Recurrence(str, Enum):
    """Recurrence rule enumeration."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Urgency(str, Enum):
    """Urgency enumeration (display only, not interpreted by the engine)."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class NotifyBefore(str, Enum):
    """How long before an occurrence's due time a reminder fires."""
    AT_TIME = "at_time"
    FIVE_MIN = "5_min"
    TEN_MIN = "10_min"
    FIFTEEN_MIN = "15_min"
    THIRTY_MIN = "30_min"
    ONE_HOUR = "1_hour"
    ONE_DAY = "1_day"


def _validate_time_of_day(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not TIME_OF_DAY_PATTERN.match(v):
        raise ValueError("anchor_time must be HH:MM (00:00-23:59)")
    return v


class NotifySettings(BaseModel):
    """Reminder settings for a task."""

    notify: bool = Field(False, description="Whether reminders are enabled")
    notify_before: Optional[NotifyBefore] = Field(None, description="Reminder offset before the due time")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class Task(BaseModel):
    """Canonical Task model: a recurring or one-off reminder."""

    id: str = Field(..., description="Unique task identifier (UUID v4)")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task notes or description")
    anchor_date: Optional[date] = Field(
        None,
        description="Date the recurrence is computed from (due date for one-off tasks); null means anytime",
    )
    anchor_time: Optional[str] = Field(None, description="Time of day (HH:MM), local calendar")
    recurrence: Recurrence = Field(Recurrence.NONE, description="Recurrence rule")
    completed: bool = Field(False, description="Archived flag; only meaningful for non-recurring tasks")
    urgency: Urgency = Field(Urgency.NORMAL, description="Task urgency")
    notify_settings: NotifySettings = Field(default_factory=NotifySettings, description="Reminder settings")
    shared_with: List[str] = Field(default_factory=list, description="User IDs this task is shared with")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    @field_validator("anchor_time")
    @classmethod
    def _validate_anchor_time(cls, v):
        return _validate_time_of_day(v)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class TaskUpdate(BaseModel):
    """Partial task update. Only fields that were explicitly set are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    anchor_date: Optional[date] = None
    anchor_time: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    completed: Optional[bool] = None
    urgency: Optional[Urgency] = None
    notify_settings: Optional[NotifySettings] = None
    shared_with: Optional[List[str]] = None

    @field_validator("anchor_time")
    @classmethod
    def _validate_anchor_time(cls, v):
        return _validate_time_of_day(v)

    @field_validator("title", "recurrence", "completed", "urgency", "notify_settings", "shared_with")
    @classmethod
    def _reject_null(cls, v, info):
        # Omitted fields are never validated; an explicit null cannot clear a required field.
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    def changes(self) -> dict:
        """Return only the explicitly provided fields."""
        return self.model_dump(exclude_unset=True)

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
