"""RecurringEventTemplate ORM model."""
import uuid
import enum
from sqlalchemy import (
    Column, String, Text, Date, Time, DateTime, Integer, Float, Boolean, JSON, Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from outing_planner.database import Base
from outing_planner.models.event import utcnow


class RecurrencePattern(str, enum.Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class TemplateStatus(str, enum.Enum):
    active = "active"
    paused = "paused"


class RecurringEventTemplate(Base):
    __tablename__ = "recurring_event_templates"

    template_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organizer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(50), nullable=False, default="team_outing")

    recurrence_pattern = Column(SAEnum(RecurrencePattern), nullable=False)
    days_of_week = Column(JSON, nullable=True)  # ["monday", "wednesday"]
    day_of_month = Column(Integer, nullable=True)  # None = last day of month
    month = Column(Integer, nullable=True)  # yearly only, defaults to start_date.month

    scheduled_time = Column(Time, nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")
    estimated_duration = Column(Integer, nullable=True)
    expected_attendees = Column(Integer, nullable=False)
    max_attendees = Column(Integer, nullable=True)
    acceptance_threshold = Column(Float, nullable=False, default=0.7)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    occurrence_count = Column(Integer, nullable=True)

    auto_create_events = Column(Boolean, nullable=False, default=True)
    days_in_advance = Column(Integer, nullable=False, default=7)
    status = Column(SAEnum(TemplateStatus), nullable=False, default=TemplateStatus.active)

    last_generated_date = Column(Date, nullable=True)
    occurrences_generated = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
