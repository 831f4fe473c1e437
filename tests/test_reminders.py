"""Tests for reminder trigger computation."""

from datetime import date, datetime, time

from dueline.engine.reminders import (
    default_reminder_time,
    due_reminders,
    parse_time_of_day,
    reminder_time,
)
from dueline.models.ledger import ExceptionRecord
from dueline.models.task import NotifySettings, Recurrence, Task
from dueline.recurrence.resolver import LedgerSnapshot


def _task(base, **overrides):
    return Task(**{
        **base,
        "id": "R1",
        "title": "Take pills",
        "recurrence": Recurrence.DAILY,
        "anchor_date": date(2024, 1, 1),
        "notify_settings": NotifySettings(notify=True),
        **overrides,
    })


class TestReminderTime:
    def test_default_offset_is_ten_minutes(self, sample_task_base):
        task = _task(sample_task_base, anchor_time="08:00")
        assert reminder_time(task, date(2024, 1, 5)) == datetime(2024, 1, 5, 7, 50)

    def test_one_day_offset(self, sample_task_base):
        task = _task(sample_task_base, anchor_time="08:00", notify_settings=NotifySettings(notify=True, notify_before="1_day"))
        assert reminder_time(task, date(2024, 1, 5)) == datetime(2024, 1, 4, 8, 0)

    def test_untimed_uses_default_reminder_time(self, sample_task_base, monkeypatch):
        monkeypatch.delenv("DUELINE_DEFAULT_REMINDER_TIME", raising=False)
        task = _task(sample_task_base, notify_settings=NotifySettings(notify=True, notify_before="at_time"))
        assert reminder_time(task, date(2024, 1, 5)) == datetime(2024, 1, 5, 9, 0)

    def test_default_reminder_time_from_env(self, monkeypatch):
        monkeypatch.setenv("DUELINE_DEFAULT_REMINDER_TIME", "07:15")
        assert default_reminder_time() == time(7, 15)
        monkeypatch.setenv("DUELINE_DEFAULT_REMINDER_TIME", "7am")
        assert default_reminder_time() == time(9, 0)

    def test_parse_time_of_day(self):
        assert parse_time_of_day("23:59") == time(23, 59)
        assert parse_time_of_day("24:00") is None
        assert parse_time_of_day(None) is None


class TestDueReminders:
    def test_only_notifying_due_occurrences(self, sample_task_base):
        quiet = _task(sample_task_base, id="quiet", notify_settings=NotifySettings(notify=False))
        loud = _task(sample_task_base, anchor_time="08:00")
        now = datetime(2024, 1, 5, 7, 55)
        reminders = due_reminders([quiet, loud], now)
        assert [r.key for r in reminders] == ["R1_2024-01-05"]
        assert reminders[0].due_at == datetime(2024, 1, 5, 8, 0)

    def test_not_yet_due(self, sample_task_base):
        task = _task(sample_task_base, anchor_time="08:00")
        assert due_reminders([task], datetime(2024, 1, 5, 7, 49)) == []

    def test_already_sent_and_excluded_skipped(self, sample_task_base):
        task = _task(sample_task_base, anchor_time="08:00")
        now = datetime(2024, 1, 5, 7, 55)
        assert due_reminders([task], now, already_sent={"R1_2024-01-05"}) == []
        snapshot = LedgerSnapshot.from_records(exceptions=[ExceptionRecord(task_id="R1", date=date(2024, 1, 5))])
        assert due_reminders([task], now, snapshot) == []

    def test_day_before_offset_fires_for_tomorrow(self, sample_task_base):
        task = _task(sample_task_base, anchor_time="08:00", notify_settings=NotifySettings(notify=True, notify_before="1_day"))
        reminders = due_reminders([task], datetime(2024, 1, 5, 8, 30))
        assert [r.key for r in reminders] == ["R1_2024-01-05", "R1_2024-01-06"]
