"""Waitlist for events at capacity.

Promotion is the one place where two organizer requests can race for the same
free spot. The spot count and the event version are read together, and the
promotion is only committed if the version is still the one that was read;
every write that changes the accepted count bumps the version, so the second
of two concurrent promotions always loses.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from outing_planner.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StaleVersionError,
    StateError,
    ValidationError,
)
from outing_planner.models.event import utcnow
from outing_planner.models.participant import EventParticipant, InvitationStatus
from outing_planner.models.waitlist import WaitlistEntry, WaitlistStatus
from outing_planner.services.state_machine import EventStateMachine, accepted_count, get_event

logger = logging.getLogger(__name__)


def _waiting_query(db: Session, event_id: uuid.UUID):
    return (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.event_id == event_id, WaitlistEntry.status == WaitlistStatus.waiting)
        .order_by(WaitlistEntry.priority.desc(), WaitlistEntry.joined_at, WaitlistEntry.entry_id)
    )


def list_waiting(db: Session, event_id: uuid.UUID) -> list[WaitlistEntry]:
    get_event(db, event_id)
    return _waiting_query(db, event_id).all()


def join(
    db: Session,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    priority: int = 0,
    notes: Optional[str] = None,
) -> WaitlistEntry:
    event = get_event(db, event_id)
    if event.status.is_terminal:
        raise StateError("Cannot join the waitlist of a finished event", {"status": event.status.value})

    participant = (
        db.query(EventParticipant)
        .filter(EventParticipant.event_id == event_id, EventParticipant.user_id == user_id)
        .first()
    )
    if participant and participant.invitation_status != InvitationStatus.declined:
        raise ConflictError("User is already a participant of this event")
    if _waiting_query(db, event_id).filter(WaitlistEntry.user_id == user_id).first():
        raise ConflictError("User is already on the waitlist")

    accepted = accepted_count(db, event_id)
    if event.max_attendees is None or accepted < event.max_attendees:
        raise ValidationError(
            "Event is not full; join directly instead",
            {"accepted": accepted, "max_attendees": event.max_attendees},
        )

    entry = WaitlistEntry(event_id=event_id, user_id=user_id, priority=priority, notes=notes)
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User is already on the waitlist")
    db.refresh(entry)
    logger.info("User %s joined waitlist of event %s (priority %d)", user_id, event_id, priority)
    return entry


def promote(
    db: Session,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_id: uuid.UUID,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WaitlistEntry:
    now = now or utcnow()
    event = get_event(db, event_id)
    if event.organizer_id != actor_id:
        raise PermissionDeniedError("Only the organizer may promote from the waitlist")
    if event.status.is_terminal:
        raise StateError("Cannot promote into a finished event", {"status": event.status.value})

    entry = _waiting_query(db, event_id).filter(WaitlistEntry.user_id == user_id).first()
    if not entry:
        raise NotFoundError("WaitlistEntry", user_id)

    snapshot_version = event.version
    if expected_version is not None and expected_version != snapshot_version:
        raise StaleVersionError(event_id, expected_version)
    accepted = accepted_count(db, event_id)
    if event.max_attendees is not None and event.max_attendees - accepted <= 0:
        raise ConflictError(
            "No free spots available",
            {"accepted": accepted, "max_attendees": event.max_attendees},
        )

    machine = EventStateMachine(db)
    participant = (
        db.query(EventParticipant)
        .filter(EventParticipant.event_id == event_id, EventParticipant.user_id == user_id)
        .first()
    )
    if participant is None:
        participant = EventParticipant(event_id=event_id, user_id=user_id, invited_by=actor_id, invited_at=now)
        db.add(participant)
    participant.invitation_status = InvitationStatus.accepted
    participant.responded_at = now
    entry.status = WaitlistStatus.promoted
    entry.promoted_at = now

    try:
        machine.touch(event_id, snapshot_version, now)
    except StaleVersionError:
        machine.rollback()
        logger.info("Promotion of %s on event %s lost a concurrent update", user_id, event_id)
        raise
    machine.commit()
    db.refresh(entry)
    logger.info("Promoted %s from waitlist of event %s", user_id, event_id)
    return entry


def promote_next(
    db: Session,
    event_id: uuid.UUID,
    actor_id: uuid.UUID,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WaitlistEntry:
    get_event(db, event_id)
    head = _waiting_query(db, event_id).first()
    if not head:
        raise NotFoundError("WaitlistEntry", event_id)
    return promote(db, event_id, head.user_id, actor_id, expected_version, now)
