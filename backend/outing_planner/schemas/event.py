"""Pydantic schemas for Events, participants and lifecycle history."""
from __future__ import annotations
from datetime import date, datetime, time
from uuid import UUID
from typing import Any, Optional
from pydantic import BaseModel, Field, computed_field

from outing_planner.models.event import EventStatus, Privacy
from outing_planner.models.event_transition import TransitionTrigger
from outing_planner.models.participant import InvitationStatus
from outing_planner.services.quorum import quorum as required_quorum


class EventCreate(BaseModel):
    organizer_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    event_type: str = "team_outing"
    scheduled_date: date
    scheduled_time: time
    timezone: str = "UTC"
    estimated_duration: Optional[int] = None
    expected_attendees: int
    max_attendees: Optional[int] = None
    acceptance_threshold: Optional[float] = None
    privacy: Privacy = Privacy.public
    rsvp_deadline: Optional[datetime] = None
    final_place_id: Optional[UUID] = None
    status: EventStatus = EventStatus.draft


class ParticipantOut(BaseModel):
    user_id: UUID
    invitation_status: InvitationStatus
    invited_by: Optional[UUID] = None
    invited_at: datetime
    responded_at: Optional[datetime] = None
    preferences: Optional[dict[str, Any]] = None

    model_config = {"from_attributes": True}


class EventOut(BaseModel):
    event_id: UUID
    organizer_id: UUID
    title: str
    description: Optional[str] = None
    event_type: str
    status: EventStatus
    scheduled_date: date
    scheduled_time: time
    timezone: str
    estimated_duration: Optional[int] = None
    expected_attendees: int
    max_attendees: Optional[int] = None
    acceptance_threshold: float
    privacy: Privacy
    rsvp_deadline: Optional[datetime] = None
    voting_deadline: Optional[datetime] = None
    final_place_id: Optional[UUID] = None
    final_option_id: Optional[UUID] = None
    ai_analysis_started_at: Optional[datetime] = None
    recurring_template_id: Optional[UUID] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_user_id: Optional[UUID] = None
    cancel_reason: Optional[str] = None
    previous_scheduled_date: Optional[date] = None
    previous_scheduled_time: Optional[time] = None
    previous_timezone: Optional[str] = None
    reschedule_count: int = 0
    last_rescheduled_at: Optional[datetime] = None
    reschedule_reason: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    participants: list[ParticipantOut] = []

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def accepted_count(self) -> int:
        return sum(1 for p in self.participants if p.invitation_status == InvitationStatus.accepted)

    @computed_field
    @property
    def quorum(self) -> int:
        return required_quorum(self.expected_attendees, self.acceptance_threshold)


class InviteRequest(BaseModel):
    actor_id: UUID
    user_ids: list[UUID] = Field(..., min_length=1)


class RespondRequest(BaseModel):
    user_id: UUID
    preferences: Optional[dict[str, Any]] = None


class PreferencesRequest(BaseModel):
    user_id: UUID
    preferences: dict[str, Any]


class AdvanceRequest(BaseModel):
    actor_id: UUID
    target: EventStatus
    version: Optional[int] = None


class EventCancelRequest(BaseModel):
    cancelled_by_user_id: UUID
    cancel_reason: str
    version: Optional[int] = None  # optimistic locking when supplied


class EventRescheduleRequest(BaseModel):
    actor_id: UUID
    scheduled_date: date
    scheduled_time: time
    timezone: Optional[str] = None  # keeps the current timezone when omitted
    reason: str = Field(..., min_length=1, max_length=500)
    version: Optional[int] = None


class TransitionOut(BaseModel):
    transition_id: UUID
    from_status: Optional[EventStatus] = None
    to_status: EventStatus
    trigger: TransitionTrigger
    actor_user_id: Optional[UUID] = None
    reason: Optional[str] = None
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}
