"""Recurring event templates and the generator that materializes them."""
import calendar
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from outing_planner.config import settings
from outing_planner.errors import NotFoundError, PermissionDeniedError, ValidationError
from outing_planner.models.event import Event, EventStatus, utcnow
from outing_planner.models.event_transition import TransitionTrigger
from outing_planner.models.participant import EventParticipant, InvitationStatus
from outing_planner.models.recurring_template import RecurrencePattern, RecurringEventTemplate, TemplateStatus
from outing_planner.services import conflict_detector
from outing_planner.services.state_machine import EventStateMachine
from outing_planner.timeutil import default_rsvp_deadline

logger = logging.getLogger(__name__)

WEEKDAYS = {name.lower(): index for index, name in enumerate(calendar.day_name)}

# Long enough to reach the next Feb 29 from any date
_SEARCH_LIMIT_DAYS = 366 * 8 + 1


def _weekdays(template: RecurringEventTemplate) -> set[int]:
    names = template.days_of_week or []
    days = {WEEKDAYS[name.lower()] for name in names if name.lower() in WEEKDAYS}
    return days or {template.start_date.weekday()}


def _matches(template: RecurringEventTemplate, day: date) -> bool:
    pattern = template.recurrence_pattern
    if pattern == RecurrencePattern.daily:
        return True
    if pattern == RecurrencePattern.weekly:
        return day.weekday() in _weekdays(template)
    if pattern == RecurrencePattern.monthly:
        last_day = calendar.monthrange(day.year, day.month)[1]
        if template.day_of_month is None:
            return day.day == last_day
        # Months without that day are skipped, not clamped
        return day.day == template.day_of_month
    if pattern == RecurrencePattern.yearly:
        month = template.month or template.start_date.month
        day_of_month = template.day_of_month or template.start_date.day
        return day.month == month and day.day == day_of_month
    return False


def next_occurrence(template: RecurringEventTemplate, after: Optional[date] = None) -> Optional[date]:
    """First occurrence strictly after ``after``, or the first one of the series.

    Returns None when the series is exhausted by end_date or occurrence_count.
    """
    if template.occurrence_count is not None and (template.occurrences_generated or 0) >= template.occurrence_count:
        return None

    day = template.start_date if after is None else max(after + timedelta(days=1), template.start_date)
    for _ in range(_SEARCH_LIMIT_DAYS):
        if template.end_date is not None and day > template.end_date:
            return None
        if _matches(template, day):
            return day
        day += timedelta(days=1)
    return None


def _materialize(db: Session, template: RecurringEventTemplate, day: date) -> Event:
    if conflict_detector.overlaps(
        db, template.organizer_id, day, template.scheduled_time, template.estimated_duration,
        tz_name=template.timezone,
    ):
        logger.warning("Recurring occurrence %s of template %s overlaps another event", day, template.template_id)

    event = Event(
        organizer_id=template.organizer_id,
        title=template.title,
        description=template.description,
        event_type=template.event_type,
        status=EventStatus.draft,
        scheduled_date=day,
        scheduled_time=template.scheduled_time,
        timezone=template.timezone,
        estimated_duration=template.estimated_duration,
        expected_attendees=template.expected_attendees,
        max_attendees=template.max_attendees,
        acceptance_threshold=template.acceptance_threshold,
        rsvp_deadline=default_rsvp_deadline(day, template.scheduled_time, template.timezone),
        recurring_template_id=template.template_id,
        version=1,
    )
    db.add(event)
    db.flush()
    db.add(EventParticipant(
        event_id=event.event_id,
        user_id=template.organizer_id,
        invitation_status=InvitationStatus.accepted,
        invited_by=template.organizer_id,
        responded_at=utcnow(),
    ))
    return event


def _claim_occurrence(
    db: Session,
    template: RecurringEventTemplate,
    read_date: Optional[date],
    day: date,
    now: datetime,
    counted: bool,
) -> bool:
    """Advance ``last_generated_date`` from ``read_date`` to ``day``.

    Conditional on the value this runner read, so when two runners race for
    the same occurrence exactly one UPDATE matches. Returns False for the loser.
    """
    last = RecurringEventTemplate.last_generated_date
    stmt = (
        update(RecurringEventTemplate)
        .where(
            RecurringEventTemplate.template_id == template.template_id,
            last.is_(None) if read_date is None else last == read_date,
        )
        .values(last_generated_date=day, updated_at=now)
    )
    if counted:
        stmt = stmt.values(occurrences_generated=RecurringEventTemplate.occurrences_generated + 1)
    result = db.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1


def generate_for_template(db: Session, template: RecurringEventTemplate, now: datetime) -> list[Event]:
    horizon = now.date() + timedelta(days=template.days_in_advance)
    created = []
    while True:
        read_date = template.last_generated_date
        day = next_occurrence(template, read_date)
        if day is None or day > horizon:
            break
        past = day < now.date()
        if not _claim_occurrence(db, template, read_date, day, now, counted=not past):
            db.rollback()
            logger.info("Occurrence %s of template %s was claimed by another runner", day, template.template_id)
            db.refresh(template)
            continue

        if past:
            logger.info("Skipping past occurrence %s of template %s", day, template.template_id)
            db.commit()
            db.refresh(template)
            continue

        machine = EventStateMachine(db)
        event = _materialize(db, template, day)
        machine.record_creation(event, template.organizer_id, TransitionTrigger.system)
        machine.commit()
        db.refresh(template)
        db.refresh(event)
        created.append(event)
        logger.info("Generated occurrence %s of template %s as event %s", day, template.template_id, event.event_id)
    return created


def generate_due(db: Session, now: Optional[datetime] = None) -> list[Event]:
    """Materialize every occurrence that is within its template's lead time."""
    now = now or utcnow()
    templates = (
        db.query(RecurringEventTemplate)
        .filter(
            RecurringEventTemplate.status == TemplateStatus.active,
            RecurringEventTemplate.auto_create_events.is_(True),
        )
        .order_by(RecurringEventTemplate.created_at)
        .all()
    )
    created = []
    for template in templates:
        try:
            created.extend(generate_for_template(db, template, now))
        except Exception:
            db.rollback()
            logger.exception("Recurring generation failed for template %s", template.template_id)
    return created


# ── Template actions ───────────────────────────────────────────────

def _validate(fields: dict[str, Any]) -> None:
    pattern = fields["recurrence_pattern"]
    days = fields.get("days_of_week")
    if days:
        unknown = [name for name in days if name.lower() not in WEEKDAYS]
        if unknown:
            raise ValidationError("Unknown weekday names", {"days_of_week": unknown})
    day_of_month = fields.get("day_of_month")
    if day_of_month is not None and not 1 <= day_of_month <= 31:
        raise ValidationError("day_of_month must be between 1 and 31")
    month = fields.get("month")
    if month is not None and not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if pattern == RecurrencePattern.yearly and month is None and day_of_month is not None:
        fields["month"] = fields["start_date"].month
    end_date = fields.get("end_date")
    if end_date is not None and end_date < fields["start_date"]:
        raise ValidationError("end_date must not be before start_date")
    count = fields.get("occurrence_count")
    if count is not None and count < 1:
        raise ValidationError("occurrence_count must be at least 1")
    if fields.get("expected_attendees", 0) < 2:
        raise ValidationError("expected_attendees must be at least 2")
    if fields.get("days_in_advance", 0) < 0:
        raise ValidationError("days_in_advance must not be negative")


def create_template(db: Session, organizer_id: uuid.UUID, **fields: Any) -> RecurringEventTemplate:
    fields.setdefault("acceptance_threshold", settings.DEFAULT_ACCEPTANCE_THRESHOLD)
    fields.setdefault("days_in_advance", 7)
    _validate(fields)
    template = RecurringEventTemplate(organizer_id=organizer_id, **fields)
    db.add(template)
    db.commit()
    db.refresh(template)
    logger.info("Created %s template %s for organizer %s",
                template.recurrence_pattern.value, template.template_id, organizer_id)
    return template


def get_template(db: Session, template_id: uuid.UUID) -> RecurringEventTemplate:
    template = db.query(RecurringEventTemplate).filter(RecurringEventTemplate.template_id == template_id).first()
    if not template:
        raise NotFoundError("RecurringEventTemplate", template_id)
    return template


def _owned_template(db: Session, template_id: uuid.UUID, actor_id: uuid.UUID) -> RecurringEventTemplate:
    template = get_template(db, template_id)
    if template.organizer_id != actor_id:
        raise PermissionDeniedError("Only the organizer may change this template")
    return template


def list_templates(db: Session, organizer_id: Optional[uuid.UUID] = None) -> list[RecurringEventTemplate]:
    query = db.query(RecurringEventTemplate)
    if organizer_id:
        query = query.filter(RecurringEventTemplate.organizer_id == organizer_id)
    return query.order_by(RecurringEventTemplate.created_at).all()


def toggle_template(db: Session, template_id: uuid.UUID, actor_id: uuid.UUID) -> RecurringEventTemplate:
    template = _owned_template(db, template_id, actor_id)
    template.status = TemplateStatus.paused if template.status == TemplateStatus.active else TemplateStatus.active
    template.updated_at = utcnow()
    db.commit()
    db.refresh(template)
    logger.info("Template %s is now %s", template_id, template.status.value)
    return template


def delete_template(db: Session, template_id: uuid.UUID, actor_id: uuid.UUID) -> None:
    """Delete the template; events it already generated are kept and detached."""
    template = _owned_template(db, template_id, actor_id)
    db.query(Event).filter(Event.recurring_template_id == template_id).update(
        {Event.recurring_template_id: None}, synchronize_session=False,
    )
    db.delete(template)
    db.commit()
    logger.info("Deleted template %s", template_id)
