"""Timezone helpers.

All deadlines are stored in UTC. SQLite hands back naive datetimes, so every
comparison goes through ``as_utc`` first.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


def local_to_utc(day: date, at: time, tz_name: str) -> datetime:
    """Interpret a wall-clock date/time in ``tz_name`` and return it in UTC."""
    tz = pytz.timezone(tz_name or "UTC")
    local = tz.localize(datetime.combine(day, at))
    return local.astimezone(pytz.utc)


def event_start_utc(event) -> datetime:
    return local_to_utc(event.scheduled_date, event.scheduled_time, event.timezone)


def window(day: date, start: time, duration_minutes: int, tz_name: str = "UTC") -> tuple[datetime, datetime]:
    """UTC [start, end) window of an event scheduled at ``start`` local time in ``tz_name``."""
    begin = local_to_utc(day, start, tz_name)
    return begin, begin + timedelta(minutes=duration_minutes)


def default_rsvp_deadline(day: date, at: time, tz_name: str) -> datetime:
    """One day before the scheduled start."""
    return local_to_utc(day, at, tz_name) - timedelta(days=1)
