"""Day-boundary helpers."""

from __future__ import annotations

from datetime import datetime


def truncate_to_start_of_day(moment: datetime) -> datetime:
    """Midnight of the same day, keeping the time zone."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def truncate_to_end_of_day(moment: datetime) -> datetime:
    """The last quarter-hour slot (23:45) of the same day, keeping the time zone."""
    return moment.replace(hour=23, minute=45, second=0, microsecond=0)