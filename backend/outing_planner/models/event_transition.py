"""EventTransition ORM model: append-only ledger of committed status changes."""
import uuid
import enum
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID
from outing_planner.database import Base
from outing_planner.models.event import EventStatus, utcnow


class TransitionTrigger(str, enum.Enum):
    organizer = "organizer"
    system = "system"
    coordinator = "coordinator"
    scheduler = "scheduler"


class EventTransition(Base):
    __tablename__ = "event_transitions"

    transition_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.event_id"), nullable=False, index=True)
    from_status = Column(SAEnum(EventStatus), nullable=True)
    to_status = Column(SAEnum(EventStatus), nullable=False)
    trigger = Column(SAEnum(TransitionTrigger), nullable=False)
    actor_user_id = Column(UUID(as_uuid=True), nullable=True)
    reason = Column(String(500), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
