"""Event API routes; lifecycle rules live in event_service."""
import logging
from uuid import UUID
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from outing_planner.database import get_db
from outing_planner.models.event import EventStatus
from outing_planner.schemas.event import (
    AdvanceRequest,
    EventCancelRequest,
    EventCreate,
    EventOut,
    EventRescheduleRequest,
    InviteRequest,
    ParticipantOut,
    PreferencesRequest,
    RespondRequest,
    TransitionOut,
)
from outing_planner.services import event_service
from outing_planner.services.state_machine import EventStateMachine, get_event as load_event

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Create an event; the organizer is its first accepted participant."""
    return event_service.create_event(db=db, **payload.model_dump())


@router.get("/", response_model=list[EventOut])
def list_events(
    organizer_id: Optional[UUID] = Query(None),
    participant_id: Optional[UUID] = Query(None),
    event_status: Optional[EventStatus] = Query(None, alias="status"),
    include_finished: bool = Query(True),
    db: Session = Depends(get_db),
):
    """List events with optional filters."""
    return event_service.list_events(
        db,
        organizer_id=organizer_id,
        participant_id=participant_id,
        status=event_status,
        include_finished=include_finished,
    )


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: UUID, db: Session = Depends(get_db)):
    return load_event(db, event_id)


@router.get("/{event_id}/transitions", response_model=list[TransitionOut])
def list_transitions(event_id: UUID, db: Session = Depends(get_db)):
    """Lifecycle history of an event, oldest first."""
    load_event(db, event_id)
    return EventStateMachine(db).history(event_id)


@router.post("/{event_id}/invitations", response_model=list[ParticipantOut], status_code=status.HTTP_201_CREATED)
def invite(event_id: UUID, payload: InviteRequest, db: Session = Depends(get_db)):
    return event_service.invite_participants(db, event_id, payload.actor_id, payload.user_ids)


@router.post("/{event_id}/accept", response_model=ParticipantOut)
def accept(event_id: UUID, payload: RespondRequest, db: Session = Depends(get_db)):
    return event_service.accept_invitation(db, event_id, payload.user_id, payload.preferences)


@router.post("/{event_id}/decline", response_model=ParticipantOut)
def decline(event_id: UUID, payload: RespondRequest, db: Session = Depends(get_db)):
    return event_service.decline_invitation(db, event_id, payload.user_id)


@router.put("/{event_id}/preferences", response_model=ParticipantOut)
def submit_preferences(event_id: UUID, payload: PreferencesRequest, db: Session = Depends(get_db)):
    return event_service.submit_preferences(db, event_id, payload.user_id, payload.preferences)


@router.post("/{event_id}/advance", response_model=EventOut)
def advance(event_id: UUID, payload: AdvanceRequest, db: Session = Depends(get_db)):
    """Organizer moves the event along an allowed edge (e.g. draft -> planning)."""
    return event_service.advance_event(db, event_id, payload.actor_id, payload.target, payload.version)


@router.post("/{event_id}/cancel", response_model=EventOut)
def cancel_event(event_id: UUID, payload: EventCancelRequest, db: Session = Depends(get_db)):
    """Cancel an event (organizer only, reason required)."""
    return event_service.cancel_event(
        db=db,
        event_id=event_id,
        actor_id=payload.cancelled_by_user_id,
        reason=payload.cancel_reason,
        expected_version=payload.version,
    )


@router.post("/{event_id}/reschedule", response_model=EventOut)
def reschedule_event(event_id: UUID, payload: EventRescheduleRequest, db: Session = Depends(get_db)):
    """Move an event to a new date/time (organizer only, reason required)."""
    return event_service.reschedule_event(
        db=db,
        event_id=event_id,
        actor_id=payload.actor_id,
        new_date=payload.scheduled_date,
        new_time=payload.scheduled_time,
        reason=payload.reason,
        expected_version=payload.version,
        timezone=payload.timezone,
    )
