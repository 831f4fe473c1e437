"""Per-occurrence ledger records for dueline."""

import datetime as dt
from typing import Optional, Tuple
from pydantic import BaseModel, Field

OccurrenceKey = Tuple[str, dt.date]


class CompletionRecord(BaseModel):
    """Marks one occurrence of a recurring task as done on one date."""

    id: Optional[str] = Field(None, description="Store-assigned record ID (null until persisted)")
    task_id: str = Field(..., description="Owning task ID")
    date: dt.date = Field(..., description="Occurrence date that was completed")
    created_at: Optional[dt.datetime] = Field(None, description="When the completion was recorded")

    @property
    def key(self) -> OccurrenceKey:
        return (self.task_id, self.date)


class ExceptionRecord(BaseModel):
    """Permanently suppresses one occurrence of a recurring task."""

    id: Optional[str] = Field(None, description="Store-assigned record ID (null until persisted)")
    task_id: str = Field(..., description="Owning task ID")
    date: dt.date = Field(..., description="Occurrence date that is skipped")
    created_at: Optional[dt.datetime] = Field(None, description="When the exception was recorded")

    @property
    def key(self) -> OccurrenceKey:
        return (self.task_id, self.date)
