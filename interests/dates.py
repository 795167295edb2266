"""
Day index helpers.

Days are counted from the Unix epoch (1970-01-01 is day 0), in UTC. Buffer
day keys are the decimal string of the day index, so they sort numerically.
"""

from __future__ import annotations

from datetime import date, datetime, timezone


EPOCH = date(1970, 1, 1)


def day_index(value: date | datetime) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return (value - EPOCH).days


def today() -> int:
    return day_index(datetime.now(timezone.utc))


def day_key(value: date | datetime | int) -> str:
    if isinstance(value, int):
        return str(value)
    return str(day_index(value))


def day_from_timestamp(timestamp: float) -> int:
    """Day index for a POSIX timestamp in seconds."""
    return day_index(datetime.fromtimestamp(timestamp, tz=timezone.utc))
