"""WaitlistEntry ORM model."""
import uuid
import enum
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, Enum as SAEnum, text
from sqlalchemy.dialects.postgresql import UUID
from outing_planner.database import Base
from outing_planner.models.event import utcnow


class WaitlistStatus(str, enum.Enum):
    waiting = "waiting"
    promoted = "promoted"
    expired = "expired"


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"
    __table_args__ = (
        # One live entry per user and event; promoted/expired rows are kept as history
        Index(
            "uq_waitlist_waiting",
            "event_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'waiting'"),
            postgresql_where=text("status = 'waiting'"),
        ),
    )

    entry_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.event_id"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    status = Column(SAEnum(WaitlistStatus), nullable=False, default=WaitlistStatus.waiting)
    priority = Column(Integer, nullable=False, default=0)
    notes = Column(String(500), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    promoted_at = Column(DateTime(timezone=True), nullable=True)
