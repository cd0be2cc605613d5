"""
Clock-time rules for notification suppression.
"""

from __future__ import annotations

from datetime import datetime

from ..notifications.models import QuietHours


def clock_minutes(value: str) -> int:
    """Convert an "HH:MM" clock time to minutes past midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def in_quiet_hours(now: datetime, window: QuietHours) -> bool:
    """Return True if ``now`` (local time) falls inside an enabled window.

    Bounds are inclusive at minute resolution. A window whose start is later
    than its end spans midnight.
    """
    if not window.enabled:
        return False
    current = now.hour * 60 + now.minute
    start = clock_minutes(window.start)
    end = clock_minutes(window.end)
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end
