"""Reminder trigger computation for due occurrences.

Delivery (push, email) is handled elsewhere; this module only decides which
occurrences should be announced at a given moment.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
from datetime import date, datetime, time, timedelta
from typing import Collection, List, Optional, Sequence

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from dueline.models.constants import (
    DEFAULT_NOTIFY_BEFORE_MINUTES,
    DEFAULT_REMINDER_TIME,
    INSTANCE_KEY_SEPARATOR,
    NOTIFY_BEFORE_MINUTES,
    TIME_OF_DAY_PATTERN,
)
from dueline.models.occurrence import OccurrenceState
from dueline.models.task import Task
from dueline.recurrence.resolver import EMPTY_SNAPSHOT, LedgerSnapshot, resolve

load_dotenv()

logger = logging.getLogger(__name__)


class Reminder(BaseModel):
    """A reminder that should fire for one occurrence."""

    task_id: str
    date: dt.date
    title: str
    description: Optional[str] = None
    due_at: datetime = Field(..., description="Occurrence due time (local)")
    notify_at: datetime = Field(..., description="When the reminder becomes due (local)")

    @property
    def key(self) -> str:
        """Deduplication key: one reminder per task per date."""
        return f"{self.task_id}{INSTANCE_KEY_SEPARATOR}{self.date.isoformat()}"


def parse_time_of_day(value: Optional[str]) -> Optional[time]:
    if not value or not TIME_OF_DAY_PATTERN.match(value):
        return None
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def default_reminder_time() -> time:
    """Reminder time for untimed occurrences (DUELINE_DEFAULT_REMINDER_TIME, HH:MM)."""
    configured = os.getenv("DUELINE_DEFAULT_REMINDER_TIME")
    parsed = parse_time_of_day(configured)
    if configured and parsed is None:
        logger.warning(f"Ignoring malformed DUELINE_DEFAULT_REMINDER_TIME={configured!r}")
    return parsed or DEFAULT_REMINDER_TIME


def notify_offset(task: Task) -> timedelta:
    minutes = NOTIFY_BEFORE_MINUTES.get(task.notify_settings.notify_before or "", DEFAULT_NOTIFY_BEFORE_MINUTES)
    return timedelta(minutes=minutes)


def due_at(task: Task, day: date) -> datetime:
    return datetime.combine(day, parse_time_of_day(task.anchor_time) or default_reminder_time())


def reminder_time(task: Task, day: date) -> datetime:
    """When the reminder for `task` on `day` should fire."""
    return due_at(task, day) - notify_offset(task)


def due_reminders(
    tasks: Sequence[Task],
    now: datetime,
    snapshot: LedgerSnapshot = EMPTY_SNAPSHOT,
    already_sent: Collection[str] = (),
) -> List[Reminder]:
    """Reminders whose trigger time has passed and which were not sent yet.

    Today's and tomorrow's occurrences are considered, since a one-day offset fires
    the day before. Only occurrences that are still due (not completed, not
    excluded, not archived) produce reminders.
    """
    out: List[Reminder] = []
    today = now.date()
    for day in (today, today + timedelta(days=1)):
        for task in tasks:
            if not task.notify_settings.notify:
                continue
            if resolve(task, day, snapshot) != OccurrenceState.DUE:
                continue
            notify_at = reminder_time(task, day)
            if now < notify_at:
                continue
            reminder = Reminder(
                task_id=task.id,
                date=day,
                title=task.title,
                description=task.description,
                due_at=due_at(task, day),
                notify_at=notify_at,
            )
            if reminder.key in already_sent:
                continue
            out.append(reminder)
    out.sort(key=lambda r: r.notify_at)
    return out
