"""Event ORM model and lifecycle status enum."""
import uuid
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Date, Time, DateTime, Integer, Float, JSON, ForeignKey, Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from outing_planner.database import Base


class EventStatus(str, enum.Enum):
    draft = "draft"
    planning = "planning"
    inviting = "inviting"
    gathering_preferences = "gathering_preferences"
    ai_recommending = "ai_recommending"
    voting = "voting"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (EventStatus.completed, EventStatus.cancelled)


ACTIVE_STATUSES = tuple(s for s in EventStatus if not s.is_terminal)


class Privacy(str, enum.Enum):
    public = "public"
    private = "private"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(Base):
    __tablename__ = "events"

    event_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organizer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(50), nullable=False, default="team_outing")
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.draft, index=True)

    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(Time, nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")  # IANA tz
    estimated_duration = Column(Integer, nullable=True)  # minutes
    expected_attendees = Column(Integer, nullable=False)
    max_attendees = Column(Integer, nullable=True)
    acceptance_threshold = Column(Float, nullable=False, default=0.7)
    privacy = Column(SAEnum(Privacy), nullable=False, default=Privacy.public)

    rsvp_deadline = Column(DateTime(timezone=True), nullable=True)
    voting_deadline = Column(DateTime(timezone=True), nullable=True)
    final_place_id = Column(UUID(as_uuid=True), nullable=True)
    final_option_id = Column(UUID(as_uuid=True), nullable=True)

    ai_analysis_started_at = Column(DateTime(timezone=True), nullable=True)
    ai_analysis_progress = Column(JSON, nullable=True)

    recurring_template_id = Column(
        UUID(as_uuid=True), ForeignKey("recurring_event_templates.template_id"), nullable=True,
    )

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = Column(UUID(as_uuid=True), nullable=True)
    cancel_reason = Column(String(500), nullable=True)

    previous_scheduled_date = Column(Date, nullable=True)
    previous_scheduled_time = Column(Time, nullable=True)
    previous_timezone = Column(String(50), nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)
    last_rescheduled_at = Column(DateTime(timezone=True), nullable=True)
    reschedule_reason = Column(String(500), nullable=True)

    # Optimistic concurrency token, bumped by every guarded write
    version = Column(Integer, nullable=False, default=1)
    # Scheduler lease
    claimed_by = Column(String(100), nullable=True)
    claim_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    participants = relationship("EventParticipant", back_populates="event", cascade="all, delete-orphan")
