"""VenueOption and Vote ORM models."""
import uuid
import enum
from sqlalchemy import (
    Column, String, Text, Float, Integer, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from outing_planner.database import Base
from outing_planner.models.event import utcnow


class VerificationStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class SuggestionSource(str, enum.Enum):
    ai = "ai"
    organizer = "organizer"


class VenueOption(Base):
    __tablename__ = "venue_options"

    option_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.event_id"), nullable=False, index=True)
    place_id = Column(UUID(as_uuid=True), nullable=True)  # None for external places
    external_place_name = Column(String(200), nullable=True)
    ai_score = Column(Float, nullable=True)
    verification_status = Column(SAEnum(VerificationStatus), nullable=True)  # system places only
    suggested_by = Column(SAEnum(SuggestionSource), nullable=False, default=SuggestionSource.ai)
    reasoning = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("event_id", "option_id", "voter_id", name="uq_vote_event_option_voter"),
    )

    vote_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.event_id"), nullable=False, index=True)
    option_id = Column(UUID(as_uuid=True), ForeignKey("venue_options.option_id"), nullable=False)
    voter_id = Column(UUID(as_uuid=True), nullable=False)
    vote_value = Column(Integer, nullable=False)
    comment = Column(String(500), nullable=True)
    voted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
