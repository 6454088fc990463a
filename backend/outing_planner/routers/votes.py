"""Venue option and voting API routes."""
import logging
from uuid import UUID
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from outing_planner.database import get_db
from outing_planner.schemas.event import EventOut
from outing_planner.schemas.vote import (
    FinalizeRequest,
    VenueOptionCreate,
    VenueOptionOut,
    VoteCreate,
    VoteOut,
    VoteStatistics,
)
from outing_planner.services import vote_aggregator
from outing_planner.services.state_machine import get_event

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{event_id}/options", response_model=list[VenueOptionOut])
def list_options(event_id: UUID, db: Session = Depends(get_db)):
    get_event(db, event_id)
    return vote_aggregator.list_options(db, event_id)


@router.post("/{event_id}/options", response_model=VenueOptionOut, status_code=status.HTTP_201_CREATED)
def add_option(event_id: UUID, payload: VenueOptionCreate, db: Session = Depends(get_db)):
    """Organizer adds a venue option by hand."""
    return vote_aggregator.add_manual_option(
        db,
        event_id,
        payload.actor_id,
        place_id=payload.place_id,
        external_place_name=payload.external_place_name,
        reasoning=payload.reasoning,
        verification_status=payload.verification_status,
    )


@router.post("/{event_id}/votes", response_model=VoteOut)
def cast_vote(event_id: UUID, payload: VoteCreate, db: Session = Depends(get_db)):
    """Cast or replace a vote; one vote per voter and option."""
    return vote_aggregator.cast_vote(
        db, event_id, payload.option_id, payload.voter_id, payload.vote_value, payload.comment,
    )


@router.get("/{event_id}/votes/statistics", response_model=VoteStatistics)
def statistics(event_id: UUID, db: Session = Depends(get_db)):
    return vote_aggregator.get_statistics(db, event_id)


@router.post("/{event_id}/finalize", response_model=EventOut)
def finalize(event_id: UUID, payload: FinalizeRequest, db: Session = Depends(get_db)):
    """Organizer confirms the final venue and closes voting."""
    return vote_aggregator.finalize(db, event_id, payload.option_id, payload.actor_id, payload.version)
