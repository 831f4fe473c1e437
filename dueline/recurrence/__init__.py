"""Recurrence expansion and resolution for dueline."""

from dueline.recurrence.generator import RecurrenceIndex, daterange, expand, matches
from dueline.recurrence.resolver import LedgerSnapshot, history_entries, resolve, resolve_range

__all__ = [
    "RecurrenceIndex",
    "daterange",
    "expand",
    "matches",
    "LedgerSnapshot",
    "history_entries",
    "resolve",
    "resolve_range",
]
