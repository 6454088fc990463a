"""EventParticipant ORM model."""
import enum
from sqlalchemy import Column, DateTime, JSON, ForeignKey, Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from outing_planner.database import Base
from outing_planner.models.event import utcnow


class InvitationStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


class EventParticipant(Base):
    __tablename__ = "event_participants"

    event_id = Column(UUID(as_uuid=True), ForeignKey("events.event_id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), primary_key=True)
    invitation_status = Column(SAEnum(InvitationStatus), nullable=False, default=InvitationStatus.pending)
    invited_by = Column(UUID(as_uuid=True), nullable=True)
    invited_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    preferences = Column(JSON, nullable=True)

    event = relationship("Event", back_populates="participants")
