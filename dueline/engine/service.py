"""Occurrence service: the consumer-facing facade of the engine.

Holds the task view, both ledgers and an optional external calendar provider, and
answers "what is due on D?" questions. All state is injected; nothing is global.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import OrderedDict
from datetime import date, datetime
from typing import Collection, Dict, List, Optional, Tuple

from pydantic import BaseModel

from dueline.engine.calendar import DayIndex, build_day_index
from dueline.engine.deletion import DeletionChoice, DeletionCoordinator, DeletionOutcome
from dueline.engine.ledgers import CompletionLedger, ExceptionLedger
from dueline.engine.ports import CalendarProvider, CompletionStore, ExceptionStore, TaskStore
from dueline.engine.reminders import Reminder, due_reminders
from dueline.engine.tasks import TaskBook
from dueline.errors import PersistenceError
from dueline.models.constants import DAY_INDEX_CACHE_SIZE
from dueline.models.occurrence import (
    CalendarItem,
    CalendarView,
    ExternalEvent,
    InstanceIdentity,
    ItemKind,
    OccurrenceState,
    StableIdentity,
)
from dueline.models.task import Task, TaskUpdate
from dueline.recurrence.resolver import LedgerSnapshot, history_entries, resolve

logger = logging.getLogger(__name__)


class OperationResult(BaseModel):
    """Outcome of a write operation.

    `ok` is False only for persistence failures, in which case the in-memory state
    has already been rolled back. Operations on tasks or records that no longer
    exist succeed with `noop=True`.
    """

    ok: bool
    task_id: str
    date: Optional[dt.date] = None
    state: Optional[OccurrenceState] = None
    previous_state: Optional[OccurrenceState] = None
    noop: bool = False
    outcome: Optional[DeletionOutcome] = None
    error: Optional[str] = None

    class Config:
        use_enum_values = True


class OccurrenceService:
    """Answers occurrence queries and applies occurrence-level writes."""

    def __init__(
        self,
        task_store: TaskStore,
        completion_store: CompletionStore,
        exception_store: ExceptionStore,
        calendar_provider: Optional[CalendarProvider] = None,
    ):
        self.tasks = TaskBook(task_store)
        self.completions = CompletionLedger(completion_store)
        self.exceptions = ExceptionLedger(exception_store)
        self.calendar_provider = calendar_provider
        self.deletions = DeletionCoordinator(self.tasks, self.completions, self.exceptions)
        self._events_version = 0
        self._events: "OrderedDict[Tuple[date, date], List[ExternalEvent]]" = OrderedDict()
        self._index_cache: "OrderedDict[tuple, DayIndex]" = OrderedDict()

    async def load(self) -> None:
        """Pull tasks and both ledgers from their stores."""
        await self.tasks.load()
        await self.completions.load()
        await self.exceptions.load()
        self.refresh_external_events()

    def refresh_external_events(self) -> None:
        """Forget fetched external events so the next query asks the provider again."""
        self._events.clear()
        self._events_version += 1

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(completions=self.completions.keys(), exceptions=self.exceptions.keys())

    # Queries

    def _external_events(self, start: date, end: date) -> Tuple[List[ExternalEvent], bool]:
        """Events for [start, end] and whether the fetch succeeded.

        Failed fetches are not cached, so the next query asks the provider again.
        """
        if self.calendar_provider is None:
            return [], True
        key = (start, end)
        cached = self._events.get(key)
        if cached is not None:
            self._events.move_to_end(key)
            return cached, True
        try:
            events = list(self.calendar_provider.list_events(start, end))
        except Exception as e:
            logger.warning(
                f"External calendar unavailable for {start.isoformat()}..{end.isoformat()}: "
                f"{type(e).__name__}: {str(e)}"
            )
            return [], False
        self._events[key] = events
        while len(self._events) > DAY_INDEX_CACHE_SIZE:
            self._events.popitem(last=False)
        return events, True

    def day_index(self, start: date, end: date, view: CalendarView = CalendarView.ACTIVE) -> DayIndex:
        """Build (or reuse) the calendar for [start, end]."""
        view = CalendarView(view)
        cache_key = (
            start,
            end,
            view,
            self.tasks.version,
            self.completions.version,
            self.exceptions.version,
            self._events_version,
        )
        cached = self._index_cache.get(cache_key)
        if cached is not None:
            self._index_cache.move_to_end(cache_key)
            return cached

        events, fetched = self._external_events(start, end)
        index = build_day_index(
            self.tasks.all(),
            start,
            end,
            snapshot=self.snapshot(),
            external_events=events,
            view=view,
        )
        if not fetched:
            return index
        self._index_cache[cache_key] = index
        while len(self._index_cache) > DAY_INDEX_CACHE_SIZE:
            self._index_cache.popitem(last=False)
        return index

    def get_occurrences_for_date(self, day: date, view: CalendarView = CalendarView.ACTIVE) -> List[CalendarItem]:
        return self.day_index(day, day, view).items_on(day)

    def get_occurrences_for_range(
        self, start: date, end: date, view: CalendarView = CalendarView.ACTIVE
    ) -> Dict[date, List[CalendarItem]]:
        return self.day_index(start, end, view).as_dict()

    def count_due_on(self, day: date) -> int:
        """Active task occurrences on `day` (completed, excluded and external items are not counted)."""
        items = self.get_occurrences_for_date(day, CalendarView.ACTIVE)
        return sum(1 for item in items if item.kind != ItemKind.EXTERNAL)

    def resolve(self, task_id: str, day: date) -> OccurrenceState:
        task = self.tasks.get(task_id)
        if task is None:
            return OccurrenceState.ABSENT
        return resolve(task, day, self.snapshot())

    def history(self, task_id: Optional[str] = None) -> List[CalendarItem]:
        """Completed recurring occurrences plus archived one-off tasks, newest first."""
        items: List[CalendarItem] = []
        for task in self.tasks.all():
            if task_id is not None and task.id != task_id:
                continue
            if task.is_recurring:
                for occ in history_entries(task, self.completions.history_for(task.id), self.snapshot()):
                    items.append(
                        CalendarItem(
                            kind=ItemKind.RECURRING,
                            identity=InstanceIdentity(task_id=task.id, date=occ.date),
                            title=task.title,
                            date=occ.date,
                            time=task.anchor_time,
                            state=OccurrenceState.COMPLETED,
                            urgency=task.urgency,
                            task=task,
                        )
                    )
            elif task.completed:
                items.append(
                    CalendarItem(
                        kind=ItemKind.ONE_OFF,
                        identity=StableIdentity(task_id=task.id),
                        title=task.title,
                        date=task.anchor_date or task.updated_at.date(),
                        time=task.anchor_time,
                        state=OccurrenceState.COMPLETED,
                        urgency=task.urgency,
                        task=task,
                    )
                )
        items.sort(key=lambda item: item.date, reverse=True)
        return items

    def due_reminders(self, now: datetime, already_sent: Collection[str] = ()) -> List[Reminder]:
        return due_reminders(self.tasks.all(), now, self.snapshot(), already_sent)

    # Task definitions

    async def add_task(self, task: Task) -> Task:
        return await self.tasks.add(task)

    async def update_task(self, task_id: str, changes: TaskUpdate) -> Optional[Task]:
        return await self.tasks.update(task_id, changes)

    # Occurrence writes

    async def toggle_completion(self, task_id: str, day: date, completed: bool) -> OperationResult:
        """Mark or unmark one occurrence as done.

        One-off tasks have no per-date ledger; toggling them flips `Task.completed`.
        """
        task = self.tasks.get(task_id)
        if task is None:
            return OperationResult(ok=True, task_id=task_id, date=day, noop=True)
        previous = resolve(task, day, self.snapshot())
        if task.is_recurring and completed and previous in (OccurrenceState.ABSENT, OccurrenceState.EXCLUDED):
            # No occurrence to complete on this date.
            return OperationResult(ok=True, task_id=task_id, date=day, state=previous, previous_state=previous, noop=True)

        try:
            if task.is_recurring:
                await self.completions.toggle(task_id, day, completed)
            elif task.completed != completed:
                if await self.tasks.update(task_id, {"completed": completed}) is None:
                    return OperationResult(ok=True, task_id=task_id, date=day, noop=True)
        except PersistenceError as e:
            return OperationResult(
                ok=False, task_id=task_id, date=day, state=previous, previous_state=previous, error=str(e)
            )

        state = self._toggled_state(task_id, day)
        return OperationResult(ok=True, task_id=task_id, date=day, state=state, previous_state=previous)

    def _toggled_state(self, task_id: str, day: date) -> OccurrenceState:
        task = self.tasks.get(task_id)
        if task is None:
            return OccurrenceState.ABSENT
        if not task.is_recurring:
            if task.anchor_date != day:
                return OccurrenceState.ABSENT
            return OccurrenceState.COMPLETED if task.completed else OccurrenceState.DUE
        return resolve(task, day, self.snapshot())

    async def exclude_occurrence(self, task_id: str, day: date) -> OperationResult:
        task = self.tasks.get(task_id)
        if task is None:
            return OperationResult(ok=True, task_id=task_id, date=day, noop=True)
        previous = resolve(task, day, self.snapshot())
        if not task.is_recurring or previous == OccurrenceState.ABSENT:
            return OperationResult(ok=True, task_id=task_id, date=day, state=previous, previous_state=previous, noop=True)
        try:
            await self.exceptions.exclude_occurrence(task_id, day)
        except PersistenceError as e:
            return OperationResult(
                ok=False, task_id=task_id, date=day, state=previous, previous_state=previous, error=str(e)
            )
        return OperationResult(
            ok=True,
            task_id=task_id,
            date=day,
            state=resolve(task, day, self.snapshot()),
            previous_state=previous,
        )

    async def delete_series(self, task_id: str) -> OperationResult:
        if task_id not in self.tasks:
            return OperationResult(ok=True, task_id=task_id, noop=True, outcome=DeletionOutcome.NOT_FOUND)
        try:
            await self.deletions.delete_series(task_id)
        except PersistenceError as e:
            return OperationResult(ok=False, task_id=task_id, error=str(e))
        return OperationResult(ok=True, task_id=task_id, outcome=DeletionOutcome.SERIES_DELETED)

    async def delete_task(
        self,
        task_id: str,
        choice: Optional[DeletionChoice] = None,
        day: Optional[date] = None,
    ) -> OperationResult:
        """Delete a task, prompting-style: recurring tasks need a choice.

        Raises:
            TaskValidationError: a recurring task was deleted without a valid choice.
        """
        try:
            outcome = await self.deletions.delete(task_id, choice, day)
        except PersistenceError as e:
            return OperationResult(ok=False, task_id=task_id, date=day, error=str(e))
        return OperationResult(
            ok=True,
            task_id=task_id,
            date=day,
            outcome=outcome,
            noop=outcome == DeletionOutcome.NOT_FOUND,
        )
