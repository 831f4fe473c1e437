"""Task creation factory for dueline.

This module centralizes task creation logic to eliminate duplication
and ensure consistent default values across the application.
"""

import uuid
from datetime import date, datetime
from typing import Optional, Dict, Any, List

from dueline.models.task import Task, Recurrence, Urgency, NotifySettings


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary.

    Returns:
        Dictionary with default task field values
    """
    return {
        "description": None,
        "anchor_date": None,
        "anchor_time": None,
        "recurrence": Recurrence.NONE,
        "completed": False,
        "urgency": Urgency.NORMAL,
        "notify_settings": NotifySettings(),
        "shared_with": [],
    }


def create_task_base(
    title: str,
    anchor_date: Optional[date] = None,
    anchor_time: Optional[str] = None,
    recurrence: Optional[Recurrence] = None,
    description: Optional[str] = None,
    urgency: Optional[Urgency] = None,
    notify_settings: Optional[NotifySettings] = None,
    shared_with: Optional[List[str]] = None,
    task_id: Optional[str] = None,
) -> Task:
    """Create a task with defaults, allowing overrides.

    Args:
        title: Task title (required)
        anchor_date: Date the recurrence is anchored to (due date for one-off tasks)
        anchor_time: Time of day (HH:MM)
        recurrence: Recurrence rule (defaults to NONE)
        description: Task notes
        urgency: Display urgency (defaults to NORMAL)
        notify_settings: Reminder settings
        shared_with: User IDs the task is shared with
        task_id: Explicit ID (a new UUID v4 when omitted)

    Returns:
        Task object with defaults applied
    """
    now = datetime.utcnow()
    defaults = create_task_defaults()

    return Task(
        id=task_id or str(uuid.uuid4()),
        title=title,
        description=description if description is not None else defaults["description"],
        anchor_date=anchor_date if anchor_date is not None else defaults["anchor_date"],
        anchor_time=anchor_time if anchor_time is not None else defaults["anchor_time"],
        recurrence=recurrence if recurrence is not None else defaults["recurrence"],
        completed=defaults["completed"],
        urgency=urgency if urgency is not None else defaults["urgency"],
        notify_settings=notify_settings if notify_settings is not None else defaults["notify_settings"],
        shared_with=shared_with if shared_with is not None else defaults["shared_with"],
        created_at=now,
        updated_at=now,
    )
