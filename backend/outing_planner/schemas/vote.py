"""Pydantic schemas for venue options and votes."""
from datetime import datetime
from uuid import UUID
from typing import Optional
from pydantic import BaseModel, Field

from outing_planner.models.event import EventStatus
from outing_planner.models.venue_option import SuggestionSource, VerificationStatus


class VenueOptionCreate(BaseModel):
    actor_id: UUID
    place_id: Optional[UUID] = None
    external_place_name: Optional[str] = Field(None, max_length=200)
    reasoning: Optional[str] = None
    verification_status: Optional[VerificationStatus] = None


class VenueOptionOut(BaseModel):
    option_id: UUID
    event_id: UUID
    place_id: Optional[UUID] = None
    external_place_name: Optional[str] = None
    ai_score: Optional[float] = None
    verification_status: Optional[VerificationStatus] = None
    suggested_by: SuggestionSource
    reasoning: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class VoteCreate(BaseModel):
    option_id: UUID
    voter_id: UUID
    vote_value: int
    comment: Optional[str] = Field(None, max_length=500)


class VoteOut(BaseModel):
    vote_id: UUID
    event_id: UUID
    option_id: UUID
    voter_id: UUID
    vote_value: int
    comment: Optional[str] = None
    voted_at: datetime

    model_config = {"from_attributes": True}


class OptionTally(BaseModel):
    option_id: UUID
    place_id: Optional[UUID] = None
    external_place_name: Optional[str] = None
    total: int
    vote_count: int


class VoteStatistics(BaseModel):
    event_id: UUID
    status: EventStatus
    options: list[OptionTally]
    voted_count: int
    total_participants: int
    vote_progress: float
    voting_deadline: Optional[datetime] = None
    time_remaining_seconds: Optional[int] = None


class FinalizeRequest(BaseModel):
    actor_id: UUID
    option_id: UUID
    version: Optional[int] = None
