"""Pytest fixtures: file-backed SQLite database, fresh per test."""
import threading
import time as _time
import uuid
from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from outing_planner.database import Base, get_db, get_session_factory
from outing_planner.main import app
from outing_planner.models import Event, EventParticipant, EventStatus, InvitationStatus, VenueOption, Vote
from outing_planner.models.venue_option import SuggestionSource
from outing_planner.schemas.recommendation import VenueSuggestion
from outing_planner.services.notifications import StatusChangeNotifier
from outing_planner.services.recommendation_coordinator import RecommendationCoordinator, get_coordinator

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False, "timeout": 30})

    # WAL lets the background recommendation threads write while a test session reads
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def notifier():
    return StatusChangeNotifier()


@pytest.fixture(scope="function")
def recommendation_service():
    return FakeRecommendationService(venues=[
        VenueSuggestion(external_place_name="Harbor Grill", ai_score=0.91, reasoning="Seafood, fits budget"),
        VenueSuggestion(external_place_name="Noodle Bar", ai_score=0.84, reasoning="Vegetarian options"),
    ])


@pytest.fixture(scope="function")
def coordinator(session_factory, recommendation_service, notifier):
    coord = RecommendationCoordinator(
        session_factory, service=recommendation_service, notifier=notifier, timeout_seconds=5, max_workers=2,
    )
    yield coord
    coord.close()


@pytest.fixture(scope="function")
def client(session_factory, coordinator):
    """FastAPI TestClient with the database dependencies overridden to use SQLite."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Fake external recommendation service
# ---------------------------------------------------------------------------
class FakeRecommendationService:
    """Returns canned venues; can be slowed down, gated or made to fail."""

    def __init__(self, venues=None, delay: float = 0.0, error: Exception = None, gate: threading.Event = None):
        self.venues = venues or []
        self.delay = delay
        self.error = error
        self.gate = gate
        self.calls = []
        self.started = threading.Event()

    def generate_recommendations(self, event_id, preferences, location=None, radius_km=None):
        self.calls.append({"event_id": event_id, "preferences": preferences, "location": location})
        self.started.set()
        if self.gate is not None:
            self.gate.wait(10)
        if self.delay:
            _time.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.venues)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
NOW = datetime(2030, 6, 3, 9, 0, tzinfo=timezone.utc)


def new_id() -> uuid.UUID:
    return uuid.uuid4()


def future_day(days: int = 14) -> date:
    return (datetime.now(timezone.utc) + timedelta(days=days)).date()


def seed_event(
    db,
    status: EventStatus = EventStatus.inviting,
    accepted: int = 1,
    pending: int = 0,
    organizer_id: uuid.UUID = None,
    **fields,
) -> Event:
    """Insert an event in any status, bypassing the lifecycle rules.

    The organizer counts as one of ``accepted``.
    """
    organizer_id = organizer_id or new_id()
    values = dict(
        organizer_id=organizer_id,
        title="Team outing",
        status=status,
        scheduled_date=date(2030, 6, 20),
        scheduled_time=time(18, 0),
        timezone="UTC",
        expected_attendees=5,
        acceptance_threshold=0.7,
        rsvp_deadline=datetime(2030, 6, 19, 18, 0, tzinfo=timezone.utc),
        version=1,
    )
    values.update(fields)
    ev = Event(**values)
    db.add(ev)
    db.flush()
    for i in range(accepted):
        db.add(EventParticipant(
            event_id=ev.event_id,
            user_id=organizer_id if i == 0 else new_id(),
            invitation_status=InvitationStatus.accepted,
        ))
    for _ in range(pending):
        db.add(EventParticipant(event_id=ev.event_id, user_id=new_id()))
    db.commit()
    db.refresh(ev)
    return ev


def accepted_user_ids(db, event_id) -> list[uuid.UUID]:
    rows = (
        db.query(EventParticipant.user_id)
        .filter(EventParticipant.event_id == event_id,
                EventParticipant.invitation_status == InvitationStatus.accepted)
        .all()
    )
    return [r.user_id for r in rows]


def add_option(db, event_id, name: str = "Venue", created_at: datetime = None, **fields) -> VenueOption:
    option = VenueOption(
        event_id=event_id,
        external_place_name=name,
        suggested_by=SuggestionSource.ai,
        **fields,
    )
    if created_at is not None:
        option.created_at = created_at
    db.add(option)
    db.commit()
    db.refresh(option)
    return option


def add_vote(db, event_id, option_id, voter_id, value: int) -> Vote:
    vote = Vote(event_id=event_id, option_id=option_id, voter_id=voter_id, vote_value=value)
    db.add(vote)
    db.commit()
    return vote


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.05) -> bool:
    deadline = _time.monotonic() + timeout
    while _time.monotonic() < deadline:
        if predicate():
            return True
        _time.sleep(interval)
    return predicate()
