"""In-memory completion and exception ledgers backed by a persistence store.

Writes are optimistic: the local view changes before the store is awaited and is
restored to its previous value if the store fails. Operations on the same
(task_id, date) key are serialized; different keys run independently.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Callable, Dict, FrozenSet, Generic, Hashable, List, Optional, TypeVar

from dueline.engine.ports import CompletionStore, ExceptionStore, call_store
from dueline.errors import NotFoundError, PersistenceError
from dueline.models.ledger import CompletionRecord, ExceptionRecord, OccurrenceKey

logger = logging.getLogger(__name__)

R = TypeVar("R", CompletionRecord, ExceptionRecord)


class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class OccurrenceLedger(Generic[R]):
    """Shared machinery for the (task_id, date)-keyed ledgers."""

    kind = "record"

    def __init__(self, store):
        self.store = store
        self.version = 0
        self._records: Dict[OccurrenceKey, R] = {}
        self._latest_seq: Dict[OccurrenceKey, int] = {}
        self._seq = itertools.count(1)
        self._locks = KeyedLocks()
        self._keys_cache: Optional[FrozenSet[OccurrenceKey]] = None
        self._keys_cache_version = -1

    async def load(self) -> int:
        """Replace the local view with the store's current records."""
        records = await call_store(self.store.list())
        self._records = {r.key: r for r in records}
        self._bump()
        logger.debug(f"Loaded {len(self._records)} {self.kind} records")
        return len(self._records)

    def contains(self, task_id: str, day: date) -> bool:
        return (task_id, day) in self._records

    def get(self, task_id: str, day: date) -> Optional[R]:
        return self._records.get((task_id, day))

    def keys(self) -> FrozenSet[OccurrenceKey]:
        """Membership set for the current version (rebuilt only after a change)."""
        if self._keys_cache is None or self._keys_cache_version != self.version:
            self._keys_cache = frozenset(self._records)
            self._keys_cache_version = self.version
        return self._keys_cache

    def records_for(self, task_id: str) -> List[R]:
        return sorted(
            (r for (tid, _), r in self._records.items() if tid == task_id),
            key=lambda r: r.date,
        )

    def discard_task(self, task_id: str) -> int:
        """Drop every local record for a task (after its series was deleted)."""
        keys = [key for key in self._records if key[0] == task_id]
        for key in keys:
            del self._records[key]
            self._latest_seq.pop(key, None)
        if keys:
            self._bump()
        return len(keys)

    def _bump(self) -> None:
        self.version += 1

    def _put(self, key: OccurrenceKey, record: Optional[R]) -> None:
        if record is None:
            self._records.pop(key, None)
        else:
            self._records[key] = record
        self._bump()

    async def _apply(
        self,
        key: OccurrenceKey,
        desired: Optional[R],
        persist: Callable[[], Any],
    ) -> Optional[R]:
        """Optimistically move `key` to `desired`, then persist.

        `desired` is the provisional record to insert, or None to delete. Returns
        the record held for the key afterwards.
        """
        async with self._locks.hold(key):
            prior = self._records.get(key)
            if (prior is None) == (desired is None):
                # Already in the requested state.
                return prior

            seq = next(self._seq)
            self._latest_seq[key] = seq
            self._put(key, desired)

            try:
                saved = await call_store(persist())
            except NotFoundError:
                # The end state is already what the caller wants, except that an insert
                # against a vanished task must not leave a provisional record behind.
                logger.debug(f"{self.kind} target {key} no longer exists; treating as done")
                if desired is not None and self._latest_seq.get(key) == seq:
                    self._put(key, prior)
                return self._records.get(key)
            except Exception as e:
                if self._latest_seq.get(key) == seq:
                    self._put(key, prior)
                logger.error(f"Failed to persist {self.kind} {key}: {type(e).__name__}: {str(e)}")
                raise PersistenceError(
                    f"Failed to persist {self.kind} for task {key[0]} on {key[1].isoformat()}",
                    task_id=key[0],
                    day=key[1],
                ) from e

            if desired is not None and saved is not None and self._latest_seq.get(key) == seq and key in self._records:
                self._put(key, saved)
            return self._records.get(key)


class CompletionLedger(OccurrenceLedger[CompletionRecord]):
    """Which occurrences of recurring tasks are marked done."""

    kind = "completion"

    def __init__(self, store: CompletionStore):
        super().__init__(store)

    def is_completed(self, task_id: str, day: date) -> bool:
        return self.contains(task_id, day)

    async def mark_complete(self, task_id: str, day: date) -> Optional[CompletionRecord]:
        """Record a completion; a no-op if one already exists."""
        provisional = CompletionRecord(task_id=task_id, date=day)
        return await self._apply((task_id, day), provisional, lambda: self.store.insert(task_id, day))

    async def unmark_complete(self, task_id: str, day: date) -> None:
        """Remove a completion; a no-op if there is none."""
        await self._apply((task_id, day), None, lambda: self.store.delete_by(task_id, day))

    async def toggle(self, task_id: str, day: date, completed: bool) -> bool:
        """Set the completion state of one occurrence. Returns the resulting state."""
        if completed:
            await self.mark_complete(task_id, day)
        else:
            await self.unmark_complete(task_id, day)
        return self.is_completed(task_id, day)

    def history_for(self, task_id: str) -> List[CompletionRecord]:
        """All completion records for a task, oldest first."""
        return self.records_for(task_id)


class ExceptionLedger(OccurrenceLedger[ExceptionRecord]):
    """Which occurrences of recurring tasks are permanently skipped.

    There is no restore operation: once excluded, a date stays excluded until the
    whole series is deleted.
    """

    kind = "exception"

    def __init__(self, store: ExceptionStore):
        super().__init__(store)

    def is_excluded(self, task_id: str, day: date) -> bool:
        return self.contains(task_id, day)

    async def exclude_occurrence(self, task_id: str, day: date) -> Optional[ExceptionRecord]:
        provisional = ExceptionRecord(task_id=task_id, date=day)
        return await self._apply((task_id, day), provisional, lambda: self.store.insert(task_id, day))
