"""Merge task occurrences and external events into a day-indexed calendar."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Sequence, Tuple

from dueline.models.occurrence import (
    CalendarItem,
    CalendarView,
    ExternalEvent,
    ExternalIdentity,
    InstanceIdentity,
    ItemKind,
    OccurrenceState,
    StableIdentity,
)
from dueline.models.task import Task
from dueline.recurrence.generator import RecurrenceIndex, daterange
from dueline.recurrence.resolver import EMPTY_SNAPSHOT, LedgerSnapshot, is_generatable, resolve

logger = logging.getLogger(__name__)


def sort_day_items(items: Iterable[CalendarItem]) -> List[CalendarItem]:
    """Untimed items first, then ascending HH:MM; ties keep input order."""
    return sorted(items, key=lambda item: (item.time is not None, item.time or ""))


@dataclass
class DayIndex:
    """Calendar items bucketed by date for one range request."""

    start: date
    end: date
    view: CalendarView
    days: Dict[date, List[CalendarItem]] = field(default_factory=dict)

    def items_on(self, day: date) -> List[CalendarItem]:
        return list(self.days.get(day, []))

    def count(self, day: date) -> int:
        return len(self.days.get(day, []))

    def as_dict(self) -> Dict[date, List[CalendarItem]]:
        return {day: list(items) for day, items in self.days.items()}


def _task_item(task: Task, day: date, state: OccurrenceState) -> CalendarItem:
    if task.is_recurring:
        kind = ItemKind.RECURRING
        identity = InstanceIdentity(task_id=task.id, date=day)
    else:
        kind = ItemKind.ONE_OFF
        identity = StableIdentity(task_id=task.id)
    return CalendarItem(
        kind=kind,
        identity=identity,
        title=task.title,
        date=day,
        time=task.anchor_time,
        state=state,
        urgency=task.urgency,
        task=task,
    )


def _event_item(event: ExternalEvent) -> CalendarItem:
    return CalendarItem(
        kind=ItemKind.EXTERNAL,
        identity=ExternalIdentity(event_id=event.id),
        title=event.title,
        date=event.date,
        time=event.time,
        event=event,
    )


def _one_off_state(task: Task, view: CalendarView) -> OccurrenceState:
    if view == CalendarView.HISTORY:
        return OccurrenceState.COMPLETED if task.completed else OccurrenceState.ABSENT
    return OccurrenceState.DUE if not task.completed else OccurrenceState.ABSENT


def build_day_index(
    tasks: Sequence[Task],
    start: date,
    end: date,
    snapshot: LedgerSnapshot = EMPTY_SNAPSHOT,
    external_events: Iterable[ExternalEvent] = (),
    view: CalendarView = CalendarView.ACTIVE,
) -> DayIndex:
    """Build the calendar for [start, end].

    The active view shows due recurring occurrences and open one-off tasks; the
    history view shows completed recurring occurrences and archived one-off tasks.
    External events are display-only and appear in both views. Tasks without an
    anchor date never land on a day.
    """
    view = CalendarView(view)
    wanted = OccurrenceState.COMPLETED if view == CalendarView.HISTORY else OccurrenceState.DUE
    index = DayIndex(start=start, end=end, view=view)
    if end < start:
        return index

    one_off: Dict[date, List[Tuple[int, Task]]] = {}
    for pos, task in enumerate(tasks):
        if task.is_recurring:
            # logs and skips recurring tasks with no anchor
            is_generatable(task)
        elif task.anchor_date is not None and start <= task.anchor_date <= end:
            one_off.setdefault(task.anchor_date, []).append((pos, task))

    # Only recurring tasks with an anchor are bucketed; positions match `tasks`.
    by_rule = RecurrenceIndex(tasks)

    events_by_day: Dict[date, List[ExternalEvent]] = {}
    for event in external_events:
        if start <= event.date <= end:
            events_by_day.setdefault(event.date, []).append(event)

    for day in daterange(start, end):
        entries = by_rule.entries_on(day) + one_off.get(day, [])
        entries.sort(key=lambda entry: entry[0])

        items: List[CalendarItem] = []
        for _, task in entries:
            if task.is_recurring:
                state = resolve(task, day, snapshot)
            else:
                state = _one_off_state(task, view)
            if state == wanted:
                items.append(_task_item(task, day, state))

        items.extend(_event_item(event) for event in events_by_day.get(day, []))
        index.days[day] = sort_day_items(items)

    logger.debug(
        f"Built {view.value} day index {start.isoformat()}..{end.isoformat()} "
        f"({sum(len(v) for v in index.days.values())} items)"
    )
    return index
