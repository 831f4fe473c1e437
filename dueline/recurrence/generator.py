"""Expand recurring task definitions into concrete occurrence dates.

Everything in this module is pure: no I/O, no ledger access, no exceptions for
bad data. A recurring task without an anchor date simply never matches.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, Iterable, List, Sequence, Tuple

from dueline.models.task import Recurrence, Task


def daterange(start: date, end: date) -> Iterable[date]:
    """Yield every day in [start, end] (inclusive)."""
    cur = start
    while cur <= end:
        yield cur
        cur = cur + timedelta(days=1)


def rule_of(task: Task) -> Recurrence:
    # use_enum_values stores the raw string on the model
    return Recurrence(task.recurrence)


def matches(task: Task, day: date) -> bool:
    """Return True if a recurring task has an occurrence on `day`.

    Monthly and yearly rules compare day-of-month literally: an anchor on the 31st
    has no occurrence in shorter months and a Feb 29 anchor only recurs in leap years.
    """
    anchor = task.anchor_date
    if anchor is None or day < anchor:
        return False

    rule = rule_of(task)
    if rule == Recurrence.DAILY:
        return True
    if rule == Recurrence.WEEKLY:
        return day.weekday() == anchor.weekday()
    if rule == Recurrence.MONTHLY:
        return day.day == anchor.day
    if rule == Recurrence.YEARLY:
        return (day.month, day.day) == (anchor.month, anchor.day)

    # Non-recurring tasks are placed by the calendar aggregator, not here.
    return False


def expand(task: Task, start: date, end: date) -> List[date]:
    """Return every matching date in [start, end], ascending."""
    if task.anchor_date is None or end < start:
        return []
    # Nothing can match before the anchor.
    first = max(start, task.anchor_date)
    return [day for day in daterange(first, end) if matches(task, day)]


class RecurrenceIndex:
    """Recurring tasks pre-bucketed by the calendar field their rule compares.

    `tasks_on(day)` returns the same tasks, in the same input order, as filtering
    the full list with `matches`, without testing every task on every day.
    """

    def __init__(self, tasks: Sequence[Task]):
        self._daily: List[Tuple[int, Task]] = []
        self._weekly: Dict[int, List[Tuple[int, Task]]] = {}
        self._monthly: Dict[int, List[Tuple[int, Task]]] = {}
        self._yearly: Dict[Tuple[int, int], List[Tuple[int, Task]]] = {}

        for pos, task in enumerate(tasks):
            anchor = task.anchor_date
            if anchor is None:
                continue
            rule = rule_of(task)
            entry = (pos, task)
            if rule == Recurrence.DAILY:
                self._daily.append(entry)
            elif rule == Recurrence.WEEKLY:
                self._weekly.setdefault(anchor.weekday(), []).append(entry)
            elif rule == Recurrence.MONTHLY:
                self._monthly.setdefault(anchor.day, []).append(entry)
            elif rule == Recurrence.YEARLY:
                self._yearly.setdefault((anchor.month, anchor.day), []).append(entry)

    def entries_on(self, day: date) -> List[Tuple[int, Task]]:
        """(input position, task) pairs with an occurrence on `day`, in input order."""
        candidates = (
            self._daily
            + self._weekly.get(day.weekday(), [])
            + self._monthly.get(day.day, [])
            + self._yearly.get((day.month, day.day), [])
        )
        candidates.sort(key=lambda entry: entry[0])
        return [(pos, task) for pos, task in candidates if task.anchor_date <= day]

    def tasks_on(self, day: date) -> List[Task]:
        return [task for _, task in self.entries_on(day)]
