"""Constants for dueline.

This module centralizes all magic numbers and default values used throughout the application.
"""

import re
from datetime import time


# Task time-of-day format (HH:MM, 24h)
TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Separator for per-occurrence identity keys (task_id + "_" + YYYY-MM-DD)
INSTANCE_KEY_SEPARATOR = "_"

# Reminders
DEFAULT_REMINDER_TIME = time(9, 0)  # untimed occurrences remind at 9 AM
DEFAULT_NOTIFY_BEFORE_MINUTES = 10
NOTIFY_BEFORE_MINUTES = {
    "at_time": 0,
    "5_min": 5,
    "10_min": 10,
    "15_min": 15,
    "30_min": 30,
    "1_hour": 60,
    "1_day": 24 * 60,
}

# Memoized day-index results kept per service instance
DAY_INDEX_CACHE_SIZE = 32

# Title used for external events without a summary
UNTITLED_EVENT_TITLE = "Untitled Event"
