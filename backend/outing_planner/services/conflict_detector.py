"""Organizer schedule conflict detection."""
import logging
import uuid
from datetime import date, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from outing_planner.config import settings
from outing_planner.errors import ConflictError, ValidationError
from outing_planner.models.event import Event, EventStatus
from outing_planner.timeutil import window

logger = logging.getLogger(__name__)

_SPILLOVER = timedelta(days=1)


def _duration(value: Optional[int]) -> int:
    if value is None:
        return settings.DEFAULT_DURATION_MINUTES
    if value <= 0:
        raise ValidationError("Duration must be a positive number of minutes", {"duration": value})
    return value


def find_overlaps(
    db: Session,
    organizer_id: uuid.UUID,
    scheduled_date: date,
    start_time: time,
    duration: Optional[int] = None,
    exclude_event_id: Optional[uuid.UUID] = None,
    tz_name: str = "UTC",
) -> list[Event]:
    """Return the organizer's live events overlapping the candidate window.

    Both windows are compared in UTC, each built from its own event's
    timezone. Windows are half-open, so an event ending exactly when the
    candidate starts does not conflict.
    """
    new_start, new_end = window(scheduled_date, start_time, _duration(duration), tz_name)

    # Local dates differ from UTC dates by at most a day either way
    query = db.query(Event).filter(
        Event.organizer_id == organizer_id,
        Event.scheduled_date.between(scheduled_date - _SPILLOVER, scheduled_date + _SPILLOVER),
        Event.status.notin_([EventStatus.cancelled, EventStatus.completed]),
    )
    if exclude_event_id:
        query = query.filter(Event.event_id != exclude_event_id)

    overlapping = []
    for existing in query.all():
        existing_start, existing_end = window(
            existing.scheduled_date,
            existing.scheduled_time,
            existing.estimated_duration or settings.DEFAULT_DURATION_MINUTES,
            existing.timezone,
        )
        if new_start < existing_end and new_end > existing_start:
            overlapping.append(existing)
    return overlapping


def overlaps(
    db: Session,
    organizer_id: uuid.UUID,
    scheduled_date: date,
    start_time: time,
    duration: Optional[int] = None,
    exclude_event_id: Optional[uuid.UUID] = None,
    tz_name: str = "UTC",
) -> bool:
    return bool(find_overlaps(db, organizer_id, scheduled_date, start_time, duration, exclude_event_id, tz_name))


def ensure_no_overlap(
    db: Session,
    organizer_id: uuid.UUID,
    scheduled_date: date,
    start_time: time,
    duration: Optional[int] = None,
    exclude_event_id: Optional[uuid.UUID] = None,
    tz_name: str = "UTC",
) -> None:
    conflicts = find_overlaps(db, organizer_id, scheduled_date, start_time, duration, exclude_event_id, tz_name)
    if conflicts:
        first = conflicts[0]
        logger.info("Schedule conflict for organizer %s with event %s", organizer_id, first.event_id)
        raise ConflictError(
            f"Event overlaps with existing event '{first.title}'",
            {
                "conflicts": [
                    {
                        "event_id": str(ev.event_id),
                        "title": ev.title,
                        "date": ev.scheduled_date.isoformat(),
                        "start": ev.scheduled_time.isoformat(),
                        "timezone": ev.timezone,
                        "duration": ev.estimated_duration or settings.DEFAULT_DURATION_MINUTES,
                    }
                    for ev in conflicts
                ]
            },
        )
