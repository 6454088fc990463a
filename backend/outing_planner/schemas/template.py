"""Pydantic schemas for recurring event templates."""
from datetime import date, datetime, time
from uuid import UUID
from typing import Optional
from pydantic import BaseModel, Field

from outing_planner.models.recurring_template import RecurrencePattern, TemplateStatus


class TemplateCreate(BaseModel):
    organizer_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    event_type: str = "team_outing"
    recurrence_pattern: RecurrencePattern
    days_of_week: Optional[list[str]] = None
    day_of_month: Optional[int] = None
    month: Optional[int] = None
    scheduled_time: time
    timezone: str = "UTC"
    estimated_duration: Optional[int] = None
    expected_attendees: int
    max_attendees: Optional[int] = None
    acceptance_threshold: Optional[float] = None
    start_date: date
    end_date: Optional[date] = None
    occurrence_count: Optional[int] = None
    auto_create_events: bool = True
    days_in_advance: int = 7


class TemplateActor(BaseModel):
    actor_id: UUID


class TemplateOut(BaseModel):
    template_id: UUID
    organizer_id: UUID
    title: str
    description: Optional[str] = None
    event_type: str
    recurrence_pattern: RecurrencePattern
    days_of_week: Optional[list[str]] = None
    day_of_month: Optional[int] = None
    month: Optional[int] = None
    scheduled_time: time
    timezone: str
    estimated_duration: Optional[int] = None
    expected_attendees: int
    max_attendees: Optional[int] = None
    acceptance_threshold: float
    start_date: date
    end_date: Optional[date] = None
    occurrence_count: Optional[int] = None
    auto_create_events: bool
    days_in_advance: int
    status: TemplateStatus
    last_generated_date: Optional[date] = None
    occurrences_generated: int
    next_occurrence: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
