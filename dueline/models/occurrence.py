"""Computed occurrence and calendar view models for dueline.

None of these are persisted. They are rebuilt from tasks, ledgers and external
events whenever a date or range is requested.
"""

import datetime as dt
from enum import Enum
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field

from dueline.models.constants import INSTANCE_KEY_SEPARATOR
from dueline.models.task import Task, Urgency


class OccurrenceState(str, Enum):
    """Resolved state of a task on one date."""
    ABSENT = "absent"
    DUE = "due"
    COMPLETED = "completed"
    EXCLUDED = "excluded"


class ItemKind(str, Enum):
    """Kind of item shown on a calendar day."""
    RECURRING = "recurring"
    ONE_OFF = "one_off"
    EXTERNAL = "external"


class CalendarView(str, Enum):
    """Which occurrences a calendar request shows."""
    ACTIVE = "active"
    HISTORY = "history"


class StableIdentity(BaseModel):
    """Identity of a task itself (one-off tasks, live task rows)."""

    kind: Literal["stable"] = "stable"
    task_id: str

    @property
    def key(self) -> str:
        return self.task_id

    class Config:
        frozen = True


class InstanceIdentity(BaseModel):
    """Identity of one dated occurrence of a recurring task."""

    kind: Literal["instance"] = "instance"
    task_id: str
    date: dt.date

    @property
    def key(self) -> str:
        return f"{self.task_id}{INSTANCE_KEY_SEPARATOR}{self.date.isoformat()}"

    class Config:
        frozen = True


class ExternalIdentity(BaseModel):
    """Identity of a read-only external calendar event."""

    kind: Literal["external"] = "external"
    event_id: str

    @property
    def key(self) -> str:
        return self.event_id

    class Config:
        frozen = True


Identity = Union[StableIdentity, InstanceIdentity, ExternalIdentity]


class Occurrence(BaseModel):
    """A single computed occurrence of a task."""

    identity: Identity = Field(..., discriminator="kind")
    task_id: str
    date: dt.date
    due_time: Optional[str] = None
    state: OccurrenceState

    class Config:
        use_enum_values = True

    @property
    def completed(self) -> bool:
        return self.state == OccurrenceState.COMPLETED

    @property
    def excluded(self) -> bool:
        return self.state == OccurrenceState.EXCLUDED


class ExternalEvent(BaseModel):
    """Read-only event from an external calendar provider."""

    id: str = Field(..., description="Provider event ID")
    title: str = Field(..., description="Event summary")
    date: dt.date = Field(..., description="Local calendar date the event starts on")
    time: Optional[str] = Field(None, description="Start time (HH:MM) or null for all-day events")
    description: Optional[str] = None
    html_link: Optional[str] = None


class CalendarItem(BaseModel):
    """One entry on a calendar day: a task occurrence or an external event."""

    kind: ItemKind
    identity: Identity = Field(..., discriminator="kind")
    title: str
    date: dt.date
    time: Optional[str] = None
    state: Optional[OccurrenceState] = Field(None, description="Null for external events")
    urgency: Optional[Urgency] = None
    task: Optional[Task] = None
    event: Optional[ExternalEvent] = None

    class Config:
        use_enum_values = True

    @property
    def is_timed(self) -> bool:
        return self.time is not None
