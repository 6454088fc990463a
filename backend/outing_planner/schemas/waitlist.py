"""Pydantic schemas for the event waitlist."""
from datetime import datetime
from uuid import UUID
from typing import Optional
from pydantic import BaseModel, Field

from outing_planner.models.waitlist import WaitlistStatus


class WaitlistJoin(BaseModel):
    user_id: UUID
    priority: int = 0
    notes: Optional[str] = Field(None, max_length=500)


class WaitlistPromote(BaseModel):
    actor_id: UUID
    user_id: Optional[UUID] = None  # None promotes the head of the queue
    version: Optional[int] = None


class WaitlistEntryOut(BaseModel):
    entry_id: UUID
    event_id: UUID
    user_id: UUID
    status: WaitlistStatus
    priority: int
    notes: Optional[str] = None
    joined_at: datetime
    promoted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
