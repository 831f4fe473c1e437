"""End-to-end tests for OccurrenceService over the SQLite repositories."""

import pytest
from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

from dueline.engine.deletion import DeletionChoice, DeletionOutcome
from dueline.engine.service import OccurrenceService
from dueline.errors import TaskValidationError
from dueline.models.constants import DAY_INDEX_CACHE_SIZE
from dueline.models.occurrence import CalendarView, ExternalEvent, ItemKind, OccurrenceState
from dueline.models.task import NotifySettings, Recurrence, TaskUpdate
from dueline.models.task_factory import create_task_base

JAN_1 = date(2024, 1, 1)
JAN_31 = date(2024, 1, 31)


def _due_days(service, start=JAN_1, end=JAN_31):
    days = service.get_occurrences_for_range(start, end)
    return [day for day, items in days.items() if any(i.identity.key.startswith("T1_") for i in items)]


@pytest.fixture
def loaded(service, weekly_task, run):
    """Service with the weekly T1 task persisted and loaded."""
    run(service.add_task(weekly_task))
    run(service.load())
    return service


class TestScenarios:
    """Weekly task T1 anchored on Monday 2024-01-01."""

    def test_january_mondays(self, loaded):
        assert _due_days(loaded) == [date(2024, 1, d) for d in (1, 8, 15, 22, 29)]

    def test_completion_reduces_due_count(self, loaded, run):
        assert loaded.count_due_on(date(2024, 1, 8)) == 1
        result = run(loaded.toggle_completion("T1", date(2024, 1, 8), True))
        assert result.ok
        assert result.previous_state == OccurrenceState.DUE
        assert result.state == OccurrenceState.COMPLETED
        assert loaded.count_due_on(date(2024, 1, 8)) == 0
        assert date(2024, 1, 8) not in _due_days(loaded)

    def test_unmark_restores_due(self, loaded, run):
        run(loaded.toggle_completion("T1", date(2024, 1, 8), True))
        result = run(loaded.toggle_completion("T1", date(2024, 1, 8), False))
        assert result.state == OccurrenceState.DUE
        assert loaded.count_due_on(date(2024, 1, 8)) == 1

    def test_exclusion_removes_single_date(self, loaded, run):
        result = run(loaded.exclude_occurrence("T1", date(2024, 1, 15)))
        assert result.ok
        assert result.state == OccurrenceState.EXCLUDED
        assert _due_days(loaded) == [date(2024, 1, d) for d in (1, 8, 22, 29)]
        assert loaded.resolve("T1", date(2024, 1, 15)) == OccurrenceState.EXCLUDED

    def test_exclusion_survives_reload(self, loaded, run):
        run(loaded.exclude_occurrence("T1", date(2024, 1, 15)))
        run(loaded.load())
        assert loaded.exceptions.is_excluded("T1", date(2024, 1, 15))

    def test_one_off_archive_via_update(self, loaded, run):
        t2 = create_task_base(title="Call bank", anchor_date=date(2024, 1, 10), task_id="T2")
        run(loaded.add_task(t2))
        assert loaded.count_due_on(date(2024, 1, 10)) == 1

        updated = run(loaded.update_task("T2", TaskUpdate(completed=True)))
        assert updated.completed is True
        assert loaded.count_due_on(date(2024, 1, 10)) == 0
        history = loaded.get_occurrences_for_date(date(2024, 1, 10), CalendarView.HISTORY)
        assert [i.identity.key for i in history] == ["T2"]

    def test_one_off_toggle_flips_completed(self, loaded, run):
        run(loaded.add_task(create_task_base(title="Call bank", anchor_date=date(2024, 1, 10), task_id="T2")))
        result = run(loaded.toggle_completion("T2", date(2024, 1, 10), True))
        assert result.state == OccurrenceState.COMPLETED
        assert loaded.tasks.get("T2").completed is True

    def test_series_delete_leaves_nothing(self, loaded, run, completion_repository, exception_repository):
        run(loaded.toggle_completion("T1", date(2024, 1, 8), True))
        run(loaded.exclude_occurrence("T1", date(2024, 1, 15)))

        result = run(loaded.delete_series("T1"))
        assert result.ok
        assert result.outcome == DeletionOutcome.SERIES_DELETED
        assert _due_days(loaded) == []
        assert loaded.history("T1") == []
        assert completion_repository.list_for_task("T1") == []
        assert exception_repository.list_for_task("T1") == []

    def test_delete_task_occurrence_choice(self, loaded, run):
        result = run(loaded.delete_task("T1", DeletionChoice.OCCURRENCE, date(2024, 1, 22)))
        assert result.outcome == DeletionOutcome.OCCURRENCE_EXCLUDED
        assert date(2024, 1, 22) not in _due_days(loaded)


class TestEdgeCases:
    def test_unknown_task_operations_are_noops(self, loaded, run):
        result = run(loaded.toggle_completion("missing", date(2024, 1, 8), True))
        assert result.ok and result.noop
        assert run(loaded.exclude_occurrence("missing", date(2024, 1, 8))).noop
        assert run(loaded.delete_series("missing")).outcome == DeletionOutcome.NOT_FOUND
        assert loaded.resolve("missing", date(2024, 1, 8)) == OccurrenceState.ABSENT

    def test_persistence_failure_reports_and_rolls_back(self, memory_stores, weekly_task, run):
        task_store, completion_store, exception_store = memory_stores([weekly_task])
        service = OccurrenceService(task_store, completion_store, exception_store)
        run(service.load())
        completion_store.fail = True

        result = run(service.toggle_completion("T1", date(2024, 1, 8), True))
        assert result.ok is False
        assert result.state == OccurrenceState.DUE
        assert result.error
        assert service.count_due_on(date(2024, 1, 8)) == 1

    def test_day_index_is_memoized_until_change(self, loaded, run):
        first = loaded.day_index(JAN_1, JAN_31)
        assert loaded.day_index(JAN_1, JAN_31) is first
        run(loaded.toggle_completion("T1", date(2024, 1, 8), True))
        assert loaded.day_index(JAN_1, JAN_31) is not first

    def test_toggle_on_date_without_occurrence_is_noop(self, memory_stores, weekly_task, run):
        task_store, completion_store, exception_store = memory_stores([weekly_task])
        service = OccurrenceService(task_store, completion_store, exception_store)
        run(service.load())

        result = run(service.toggle_completion("T1", date(2024, 1, 3), True))
        assert result.ok and result.noop
        assert result.state == OccurrenceState.ABSENT
        assert completion_store.calls == []
        assert service.history("T1") == []

    def test_toggle_on_excluded_date_is_noop(self, memory_stores, weekly_task, run):
        task_store, completion_store, exception_store = memory_stores([weekly_task])
        service = OccurrenceService(task_store, completion_store, exception_store)
        run(service.load())
        run(service.exclude_occurrence("T1", date(2024, 1, 15)))

        result = run(service.toggle_completion("T1", date(2024, 1, 15), True))
        assert result.noop
        assert result.state == OccurrenceState.EXCLUDED
        assert completion_store.calls == []
        assert service.history("T1") == []

    def test_exclude_on_date_without_occurrence_is_noop(self, memory_stores, weekly_task, run):
        task_store, completion_store, exception_store = memory_stores([weekly_task])
        service = OccurrenceService(task_store, completion_store, exception_store)
        run(service.load())

        result = run(service.exclude_occurrence("T1", date(2024, 1, 3)))
        assert result.ok and result.noop
        assert result.state == OccurrenceState.ABSENT
        assert exception_store.calls == []
        assert not service.exceptions.is_excluded("T1", date(2024, 1, 3))

    def test_invalid_update_raises_validation_error(self, loaded, run):
        with pytest.raises(TaskValidationError):
            run(loaded.tasks.update("T1", {"title": None}))
        assert loaded.tasks.get("T1").title == "Water plants"


class TestExternalCalendar:
    def test_events_merged_but_not_counted(self, memory_stores, weekly_task, run):
        provider = MagicMock()
        provider.list_events.return_value = [ExternalEvent(id="ev1", title="Dentist", date=date(2024, 1, 8), time="10:00")]
        service = OccurrenceService(*memory_stores([weekly_task]), calendar_provider=provider)
        run(service.load())

        items = service.get_occurrences_for_date(date(2024, 1, 8))
        assert [i.kind for i in items] == [ItemKind.RECURRING, ItemKind.EXTERNAL]
        assert service.count_due_on(date(2024, 1, 8)) == 1

    def test_events_fetched_once_per_range(self, memory_stores, weekly_task, run):
        provider = MagicMock()
        provider.list_events.return_value = []
        service = OccurrenceService(*memory_stores([weekly_task]), calendar_provider=provider)
        run(service.load())
        service.get_occurrences_for_date(date(2024, 1, 8))
        service.get_occurrences_for_date(date(2024, 1, 8), CalendarView.HISTORY)
        assert provider.list_events.call_count == 1

        service.refresh_external_events()
        service.get_occurrences_for_date(date(2024, 1, 8))
        assert provider.list_events.call_count == 2

    def test_provider_failure_yields_no_events(self, memory_stores, weekly_task, run):
        provider = MagicMock()
        provider.list_events.side_effect = RuntimeError("offline")
        service = OccurrenceService(*memory_stores([weekly_task]), calendar_provider=provider)
        run(service.load())
        items = service.get_occurrences_for_date(date(2024, 1, 8))
        assert [i.kind for i in items] == [ItemKind.RECURRING]

    def test_provider_failure_is_retried(self, memory_stores, weekly_task, run):
        provider = MagicMock()
        provider.list_events.side_effect = [
            RuntimeError("offline"),
            [ExternalEvent(id="ev1", title="Dentist", date=date(2024, 1, 8), time="10:00")],
        ]
        service = OccurrenceService(*memory_stores([weekly_task]), calendar_provider=provider)
        run(service.load())

        assert [i.kind for i in service.get_occurrences_for_date(date(2024, 1, 8))] == [ItemKind.RECURRING]
        items = service.get_occurrences_for_date(date(2024, 1, 8))
        assert provider.list_events.call_count == 2
        assert [i.kind for i in items] == [ItemKind.RECURRING, ItemKind.EXTERNAL]

    def test_event_cache_is_bounded(self, memory_stores, weekly_task, run):
        provider = MagicMock()
        provider.list_events.return_value = []
        service = OccurrenceService(*memory_stores([weekly_task]), calendar_provider=provider)
        run(service.load())

        for offset in range(DAY_INDEX_CACHE_SIZE + 5):
            service.get_occurrences_for_date(JAN_1 + timedelta(days=offset))
        assert len(service._events) == DAY_INDEX_CACHE_SIZE
        assert (JAN_1, JAN_1) not in service._events


class TestHistoryAndReminders:
    def test_history_newest_first(self, loaded, run):
        run(loaded.toggle_completion("T1", date(2024, 1, 1), True))
        run(loaded.toggle_completion("T1", date(2024, 1, 15), True))
        assert [i.date for i in loaded.history()] == [date(2024, 1, 15), date(2024, 1, 1)]

    def test_due_reminders_skip_completed(self, service, sample_task_base, run):
        task = create_task_base(
            title="Pills",
            anchor_date=JAN_1,
            anchor_time="08:00",
            recurrence=Recurrence.DAILY,
            notify_settings=NotifySettings(notify=True, notify_before="at_time"),
            task_id="R1",
        )
        run(service.add_task(task))
        now = datetime(2024, 1, 5, 8, 0)
        assert [r.key for r in service.due_reminders(now)] == ["R1_2024-01-05"]
        run(service.toggle_completion("R1", date(2024, 1, 5), True))
        assert service.due_reminders(now) == []
