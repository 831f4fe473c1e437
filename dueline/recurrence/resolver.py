"""Resolve task occurrences against the completion and exception ledgers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import FrozenSet, Iterable, List

from dueline.errors import TaskValidationError
from dueline.models.ledger import CompletionRecord, ExceptionRecord, OccurrenceKey
from dueline.models.occurrence import InstanceIdentity, Occurrence, OccurrenceState, StableIdentity
from dueline.models.task import Task
from dueline.recurrence.generator import expand, matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Immutable (task_id, date) membership sets for one computation."""

    completions: FrozenSet[OccurrenceKey] = field(default_factory=frozenset)
    exceptions: FrozenSet[OccurrenceKey] = field(default_factory=frozenset)

    @classmethod
    def from_records(
        cls,
        completions: Iterable[CompletionRecord] = (),
        exceptions: Iterable[ExceptionRecord] = (),
    ) -> "LedgerSnapshot":
        return cls(
            completions=frozenset(r.key for r in completions),
            exceptions=frozenset(r.key for r in exceptions),
        )

    def is_completed(self, task_id: str, day: date) -> bool:
        return (task_id, day) in self.completions

    def is_excluded(self, task_id: str, day: date) -> bool:
        return (task_id, day) in self.exceptions


EMPTY_SNAPSHOT = LedgerSnapshot()


def validate_recurring(task: Task) -> None:
    """Raise TaskValidationError if a recurring task cannot generate occurrences."""
    if task.is_recurring and task.anchor_date is None:
        raise TaskValidationError(
            f"Recurring task {task.id} ({task.recurrence}) has no anchor_date", task_id=task.id
        )


def is_generatable(task: Task) -> bool:
    """Validate a recurring task, logging (not raising) when it is unusable."""
    try:
        validate_recurring(task)
    except TaskValidationError as e:
        logger.warning(f"Skipping task {task.id}: {str(e)}")
        return False
    return True


def resolve(task: Task, day: date, snapshot: LedgerSnapshot = EMPTY_SNAPSHOT) -> OccurrenceState:
    """Resolve the state of `task` on `day`."""
    if not task.is_recurring:
        if not task.completed and task.anchor_date == day:
            return OccurrenceState.DUE
        return OccurrenceState.ABSENT

    if snapshot.is_excluded(task.id, day):
        return OccurrenceState.EXCLUDED
    if not is_generatable(task) or not matches(task, day):
        return OccurrenceState.ABSENT
    if snapshot.is_completed(task.id, day):
        return OccurrenceState.COMPLETED
    return OccurrenceState.DUE


def _occurrence(task: Task, day: date, state: OccurrenceState) -> Occurrence:
    identity = InstanceIdentity(task_id=task.id, date=day) if task.is_recurring else StableIdentity(task_id=task.id)
    return Occurrence(identity=identity, task_id=task.id, date=day, due_time=task.anchor_time, state=state)


def resolve_range(
    task: Task,
    start: date,
    end: date,
    snapshot: LedgerSnapshot = EMPTY_SNAPSHOT,
) -> List[Occurrence]:
    """Resolve every non-absent occurrence of `task` in [start, end], ascending.

    Excluded occurrences are included (state EXCLUDED) so callers can decide
    whether to drop them; calendar views always do.
    """
    if not task.is_recurring:
        if task.anchor_date is not None and start <= task.anchor_date <= end:
            state = resolve(task, task.anchor_date, snapshot)
            if state != OccurrenceState.ABSENT:
                return [_occurrence(task, task.anchor_date, state)]
        return []

    if not is_generatable(task):
        return []

    out: List[Occurrence] = []
    for day in expand(task, start, end):
        if snapshot.is_excluded(task.id, day):
            state = OccurrenceState.EXCLUDED
        elif snapshot.is_completed(task.id, day):
            state = OccurrenceState.COMPLETED
        else:
            state = OccurrenceState.DUE
        out.append(_occurrence(task, day, state))
    return out


def history_entries(
    task: Task,
    records: Iterable[CompletionRecord],
    snapshot: LedgerSnapshot = EMPTY_SNAPSHOT,
) -> List[Occurrence]:
    """Completed-occurrence history for a recurring task, one entry per record.

    Records on dates the task no longer produces (e.g. after an anchor or
    recurrence change) or on excluded dates are left out. Each entry carries an
    InstanceIdentity so it can be listed next to archived one-off tasks without
    colliding with the live task identity.
    """
    return [
        _occurrence(task, r.date, OccurrenceState.COMPLETED)
        for r in sorted(records, key=lambda r: r.date)
        if r.task_id == task.id and matches(task, r.date) and not snapshot.is_excluded(task.id, r.date)
    ]
