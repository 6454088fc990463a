"""Organizer and participant actions on events.

Responsibilities:
- Input validation and organizer schedule conflict detection on create
- Authorization: only the organizer may invite, reschedule, cancel or advance an event
- Invitation responses, with capacity and RSVP deadline checks
- Automatic lifecycle steps (draft -> planning -> inviting on first invite,
  inviting -> gathering_preferences once quorum is reached)

Every status change goes through ``EventStateMachine``.
"""
import logging
import uuid
from datetime import date, datetime, time
from typing import Any, Optional

import pytz
from sqlalchemy.orm import Session

from outing_planner.config import settings
from outing_planner.errors import (
    ConflictError,
    DeadlinePassedError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from outing_planner.models.event import Event, EventStatus, Privacy, utcnow
from outing_planner.models.event_transition import TransitionTrigger
from outing_planner.models.participant import EventParticipant, InvitationStatus
from outing_planner.models.venue_option import SuggestionSource, VenueOption, VerificationStatus
from outing_planner.services import conflict_detector
from outing_planner.services.quorum import event_quorum, quorum
from outing_planner.services.state_machine import EventStateMachine, accepted_count, get_event
from outing_planner.timeutil import as_utc, default_rsvp_deadline, local_to_utc

logger = logging.getLogger(__name__)

INVITABLE_STATUSES = (
    EventStatus.draft,
    EventStatus.planning,
    EventStatus.inviting,
    EventStatus.gathering_preferences,
)
PREFERENCE_STATUSES = (
    EventStatus.planning,
    EventStatus.inviting,
    EventStatus.gathering_preferences,
    EventStatus.ai_recommending,
)


def _check_organizer(event: Event, actor_id: uuid.UUID) -> None:
    if event.organizer_id != actor_id:
        raise PermissionDeniedError("Only the organizer may perform this action")


def _get_participant(db: Session, event_id: uuid.UUID, user_id: uuid.UUID) -> EventParticipant:
    participant = (
        db.query(EventParticipant)
        .filter(EventParticipant.event_id == event_id, EventParticipant.user_id == user_id)
        .first()
    )
    if not participant:
        raise NotFoundError("Invitation", user_id)
    return participant


def _check_rsvp_open(event: Event, now: datetime) -> None:
    deadline = as_utc(event.rsvp_deadline)
    if deadline is not None and now >= deadline:
        raise DeadlinePassedError("The RSVP deadline has passed", {"rsvp_deadline": deadline.isoformat()})


def create_event(
    db: Session,
    organizer_id: uuid.UUID,
    title: str,
    scheduled_date: date,
    scheduled_time: time,
    expected_attendees: int,
    description: Optional[str] = None,
    event_type: str = "team_outing",
    timezone: str = "UTC",
    estimated_duration: Optional[int] = None,
    max_attendees: Optional[int] = None,
    acceptance_threshold: Optional[float] = None,
    privacy: Privacy = Privacy.public,
    rsvp_deadline: Optional[datetime] = None,
    final_place_id: Optional[uuid.UUID] = None,
    status: EventStatus = EventStatus.draft,
    now: Optional[datetime] = None,
) -> Event:
    """Create an event with its organizer as the first accepted participant.

    Supplying ``final_place_id`` skips recommendations and voting: the event is
    confirmed on that venue straight away.
    """
    now = now or utcnow()
    if not title or not title.strip():
        raise ValidationError("Title is required")
    if status not in (EventStatus.draft, EventStatus.planning):
        raise ValidationError("New events start in draft or planning", {"status": status.value})
    if expected_attendees is None or expected_attendees < 2:
        raise ValidationError("expected_attendees must be at least 2")
    if max_attendees is not None and max_attendees < 2:
        raise ValidationError("max_attendees must be at least 2")
    if acceptance_threshold is None:
        acceptance_threshold = settings.DEFAULT_ACCEPTANCE_THRESHOLD
    quorum(expected_attendees, acceptance_threshold)
    if estimated_duration is not None and estimated_duration <= 0:
        raise ValidationError("Duration must be a positive number of minutes", {"duration": estimated_duration})
    try:
        start_utc = local_to_utc(scheduled_date, scheduled_time, timezone)
    except pytz.UnknownTimeZoneError:
        raise ValidationError("Unknown timezone", {"timezone": timezone})
    if start_utc <= now:
        raise ValidationError("Event must be scheduled in the future")

    if rsvp_deadline is None:
        rsvp_deadline = default_rsvp_deadline(scheduled_date, scheduled_time, timezone)
        if rsvp_deadline <= now:
            rsvp_deadline = start_utc
    elif as_utc(rsvp_deadline) >= start_utc:
        raise ValidationError("RSVP deadline must be before the event starts")

    conflict_detector.ensure_no_overlap(
        db, organizer_id, scheduled_date, scheduled_time, estimated_duration, tz_name=timezone,
    )

    event = Event(
        organizer_id=organizer_id,
        title=title.strip(),
        description=description,
        event_type=event_type,
        status=EventStatus.planning if final_place_id else status,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        timezone=timezone,
        estimated_duration=estimated_duration,
        expected_attendees=expected_attendees,
        max_attendees=max_attendees,
        acceptance_threshold=acceptance_threshold,
        privacy=privacy,
        rsvp_deadline=as_utc(rsvp_deadline),
        version=1,
    )
    db.add(event)
    db.flush()
    db.add(EventParticipant(
        event_id=event.event_id,
        user_id=organizer_id,
        invitation_status=InvitationStatus.accepted,
        invited_by=organizer_id,
        responded_at=now,
    ))

    machine = EventStateMachine(db)
    machine.record_creation(event, organizer_id, TransitionTrigger.organizer)
    if final_place_id:
        option = VenueOption(
            event_id=event.event_id,
            place_id=final_place_id,
            verification_status=VerificationStatus.approved,
            suggested_by=SuggestionSource.organizer,
            reasoning="Chosen by the organizer at creation",
        )
        db.add(option)
        db.flush()
        machine.transition(
            event.event_id, EventStatus.confirmed,
            trigger=TransitionTrigger.organizer,
            actor_id=organizer_id,
            final_option_id=option.option_id,
            final_place_id=final_place_id,
            now=now,
            commit=False,
        )
    machine.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s) by organizer %s", event.title, event.event_id, organizer_id)
    return event


def invite_participants(
    db: Session,
    event_id: uuid.UUID,
    actor_id: uuid.UUID,
    user_ids: list[uuid.UUID],
    now: Optional[datetime] = None,
) -> list[EventParticipant]:
    now = now or utcnow()
    event = get_event(db, event_id)
    _check_organizer(event, actor_id)
    if event.status not in INVITABLE_STATUSES:
        raise StateError("Invitations are closed for this event", {"status": event.status.value})
    _check_rsvp_open(event, now)
    if not user_ids:
        raise ValidationError("At least one user must be invited")
    if event.max_attendees is not None and accepted_count(db, event_id) >= event.max_attendees:
        raise ConflictError("Event is full; new guests can join the waitlist")

    invited = []
    for user_id in dict.fromkeys(user_ids):
        if user_id == event.organizer_id:
            continue
        participant = (
            db.query(EventParticipant)
            .filter(EventParticipant.event_id == event_id, EventParticipant.user_id == user_id)
            .first()
        )
        if participant is None:
            participant = EventParticipant(event_id=event_id, user_id=user_id, invited_by=actor_id, invited_at=now)
            db.add(participant)
        elif participant.invitation_status == InvitationStatus.declined:
            participant.invitation_status = InvitationStatus.pending
            participant.invited_at = now
            participant.responded_at = None
        else:
            continue
        invited.append(participant)

    machine = EventStateMachine(db)
    if event.status == EventStatus.draft:
        machine.transition(event_id, EventStatus.planning, actor_id=actor_id, now=now, commit=False)
    if event.status == EventStatus.planning:
        machine.transition(event_id, EventStatus.inviting, actor_id=actor_id, now=now, commit=False)
    machine.commit()
    for participant in invited:
        db.refresh(participant)
    logger.info("Invited %d users to event %s", len(invited), event_id)
    return invited


def accept_invitation(
    db: Session,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    preferences: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> EventParticipant:
    now = now or utcnow()
    event = get_event(db, event_id)
    participant = _get_participant(db, event_id, user_id)
    if event.status.is_terminal or event.status == EventStatus.draft:
        raise StateError("This event is not accepting responses", {"status": event.status.value})
    _check_rsvp_open(event, now)

    if participant.invitation_status == InvitationStatus.accepted:
        if preferences is not None:
            participant.preferences = preferences
            db.commit()
            db.refresh(participant)
        return participant

    snapshot_version = event.version
    accepted = accepted_count(db, event_id)
    if event.max_attendees is not None and accepted >= event.max_attendees:
        raise ConflictError(
            "Event is full; join the waitlist instead",
            {"accepted": accepted, "max_attendees": event.max_attendees},
        )

    participant.invitation_status = InvitationStatus.accepted
    participant.responded_at = now
    if preferences is not None:
        participant.preferences = preferences

    machine = EventStateMachine(db)
    machine.touch(event_id, snapshot_version, now)
    if event.status == EventStatus.inviting and accepted + 1 >= event_quorum(event):
        machine.transition(
            event_id, EventStatus.gathering_preferences,
            trigger=TransitionTrigger.system, actor_id=user_id, now=now, commit=False,
        )
    machine.commit()
    db.refresh(participant)
    logger.info("User %s accepted event %s (%d accepted)", user_id, event_id, accepted + 1)
    return participant


def decline_invitation(
    db: Session,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> EventParticipant:
    now = now or utcnow()
    event = get_event(db, event_id)
    participant = _get_participant(db, event_id, user_id)
    if event.status.is_terminal:
        raise StateError("This event is not accepting responses", {"status": event.status.value})
    if user_id == event.organizer_id:
        raise ValidationError("The organizer cannot decline their own event; cancel it instead")

    was_accepted = participant.invitation_status == InvitationStatus.accepted
    participant.invitation_status = InvitationStatus.declined
    participant.responded_at = now

    machine = EventStateMachine(db)
    if was_accepted:
        machine.touch(event_id, event.version, now)
    machine.commit()
    db.refresh(participant)
    logger.info("User %s declined event %s", user_id, event_id)
    return participant


def submit_preferences(
    db: Session,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    preferences: dict[str, Any],
) -> EventParticipant:
    event = get_event(db, event_id)
    participant = _get_participant(db, event_id, user_id)
    if participant.invitation_status != InvitationStatus.accepted:
        raise ValidationError("Only accepted participants can submit preferences")
    if event.status not in PREFERENCE_STATUSES:
        raise StateError("Preferences can no longer be changed", {"status": event.status.value})
    participant.preferences = preferences
    db.commit()
    db.refresh(participant)
    return participant


def advance_event(
    db: Session,
    event_id: uuid.UUID,
    actor_id: uuid.UUID,
    target: EventStatus,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Event:
    """Organizer-initiated transition, e.g. draft -> planning."""
    event = get_event(db, event_id)
    _check_organizer(event, actor_id)
    if target == EventStatus.cancelled:
        raise ValidationError("Use the cancel action to cancel an event")
    return EventStateMachine(db).transition(
        event_id, target,
        trigger=TransitionTrigger.organizer,
        actor_id=actor_id,
        expected_version=expected_version,
        now=now,
    )


def cancel_event(
    db: Session,
    event_id: uuid.UUID,
    actor_id: uuid.UUID,
    reason: Optional[str],
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Event:
    event = get_event(db, event_id)
    _check_organizer(event, actor_id)
    event = EventStateMachine(db).transition(
        event_id, EventStatus.cancelled,
        trigger=TransitionTrigger.organizer,
        actor_id=actor_id,
        reason=reason,
        expected_version=expected_version,
        now=now,
    )
    logger.info("Cancelled event %s (reason: %s)", event_id, reason)
    return event


def reschedule_event(
    db: Session,
    event_id: uuid.UUID,
    actor_id: uuid.UUID,
    new_date: date,
    new_time: time,
    reason: Optional[str],
    expected_version: Optional[int] = None,
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Event:
    """Move a live event to a new slot, keeping the previous one on the row.

    The overlap check ignores the event itself, so moving it within its own
    window is allowed. The RSVP deadline is reset to the default for the new
    start.
    """
    now = now or utcnow()
    event = get_event(db, event_id)
    _check_organizer(event, actor_id)
    if event.status.is_terminal:
        raise StateError("Completed or cancelled events cannot be rescheduled", {"status": event.status.value})
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to reschedule")
    if expected_version is None:
        expected_version = event.version

    timezone = timezone or event.timezone
    try:
        start_utc = local_to_utc(new_date, new_time, timezone)
    except pytz.UnknownTimeZoneError:
        raise ValidationError("Unknown timezone", {"timezone": timezone})
    if start_utc <= now:
        raise ValidationError("Event must be scheduled in the future")

    conflict_detector.ensure_no_overlap(
        db, event.organizer_id, new_date, new_time, event.estimated_duration,
        exclude_event_id=event_id, tz_name=timezone,
    )

    rsvp_deadline = default_rsvp_deadline(new_date, new_time, timezone)
    if rsvp_deadline <= now:
        rsvp_deadline = start_utc

    machine = EventStateMachine(db)
    machine.touch(
        event_id, expected_version, now,
        previous_scheduled_date=event.scheduled_date,
        previous_scheduled_time=event.scheduled_time,
        previous_timezone=event.timezone,
        scheduled_date=new_date,
        scheduled_time=new_time,
        timezone=timezone,
        rsvp_deadline=rsvp_deadline,
        reschedule_count=(event.reschedule_count or 0) + 1,
        last_rescheduled_at=now,
        reschedule_reason=reason.strip(),
    )
    machine.commit()
    event = get_event(db, event_id)
    logger.info("Rescheduled event %s to %s %s %s (reason: %s)", event_id, new_date, new_time, timezone, reason)
    return event


def list_events(
    db: Session,
    organizer_id: Optional[uuid.UUID] = None,
    participant_id: Optional[uuid.UUID] = None,
    status: Optional[EventStatus] = None,
    include_finished: bool = True,
) -> list[Event]:
    query = db.query(Event)
    if organizer_id:
        query = query.filter(Event.organizer_id == organizer_id)
    if participant_id:
        query = query.join(EventParticipant).filter(EventParticipant.user_id == participant_id)
    if status:
        query = query.filter(Event.status == status)
    if not include_finished:
        query = query.filter(Event.status.notin_([EventStatus.cancelled, EventStatus.completed]))
    return query.order_by(Event.scheduled_date, Event.scheduled_time).all()
