"""Waitlist API routes."""
import logging
from uuid import UUID
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from outing_planner.database import get_db
from outing_planner.schemas.waitlist import WaitlistEntryOut, WaitlistJoin, WaitlistPromote
from outing_planner.services import waitlist_manager

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{event_id}/waitlist", response_model=list[WaitlistEntryOut])
def list_waitlist(event_id: UUID, db: Session = Depends(get_db)):
    """Waiting entries in promotion order."""
    return waitlist_manager.list_waiting(db, event_id)


@router.post("/{event_id}/waitlist", response_model=WaitlistEntryOut, status_code=status.HTTP_201_CREATED)
def join_waitlist(event_id: UUID, payload: WaitlistJoin, db: Session = Depends(get_db)):
    return waitlist_manager.join(db, event_id, payload.user_id, payload.priority, payload.notes)


@router.post("/{event_id}/waitlist/promote", response_model=WaitlistEntryOut)
def promote(event_id: UUID, payload: WaitlistPromote, db: Session = Depends(get_db)):
    """Promote one user, or the head of the queue when no user is given."""
    if payload.user_id is None:
        return waitlist_manager.promote_next(db, event_id, payload.actor_id, payload.version)
    return waitlist_manager.promote(db, event_id, payload.user_id, payload.actor_id, payload.version)
