"""Tests for the waitlist: joining, ordering and promotion under capacity."""
import threading

import pytest

from outing_planner.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from outing_planner.models import EventParticipant, EventStatus, InvitationStatus, WaitlistEntry, WaitlistStatus
from outing_planner.services import waitlist_manager
from outing_planner.services.state_machine import accepted_count
from tests.conftest import NOW, new_id, seed_event


def _full_event(db, max_attendees=3):
    return seed_event(db, status=EventStatus.gathering_preferences, accepted=max_attendees, max_attendees=max_attendees)


def _free_one_spot(db, ev):
    participant = (
        db.query(EventParticipant)
        .filter(EventParticipant.event_id == ev.event_id, EventParticipant.user_id != ev.organizer_id)
        .first()
    )
    participant.invitation_status = InvitationStatus.declined
    db.commit()


class TestJoin:
    """Only full, live events take waitlist entries."""

    def test_join_full_event(self, db):
        ev = _full_event(db)
        user = new_id()
        entry = waitlist_manager.join(db, ev.event_id, user, priority=2, notes="Flexible")
        assert entry.status == WaitlistStatus.waiting
        assert entry.priority == 2

    def test_not_full_rejected(self, db):
        ev = seed_event(db, accepted=1, max_attendees=5)
        with pytest.raises(ValidationError):
            waitlist_manager.join(db, ev.event_id, new_id())

    def test_unlimited_event_rejected(self, db):
        ev = seed_event(db, accepted=3)
        with pytest.raises(ValidationError):
            waitlist_manager.join(db, ev.event_id, new_id())

    def test_participant_rejected(self, db):
        ev = _full_event(db)
        with pytest.raises(ConflictError):
            waitlist_manager.join(db, ev.event_id, ev.organizer_id)

    def test_duplicate_rejected(self, db):
        ev = _full_event(db)
        user = new_id()
        waitlist_manager.join(db, ev.event_id, user)
        with pytest.raises(ConflictError):
            waitlist_manager.join(db, ev.event_id, user)

    @pytest.mark.parametrize("status", [EventStatus.cancelled, EventStatus.completed])
    def test_finished_event_rejected(self, db, status):
        ev = seed_event(db, status=status, accepted=3, max_attendees=3)
        with pytest.raises(StateError):
            waitlist_manager.join(db, ev.event_id, new_id())

    def test_ordering_priority_then_fifo(self, db):
        ev = _full_event(db)
        first, second, vip = new_id(), new_id(), new_id()
        waitlist_manager.join(db, ev.event_id, first)
        waitlist_manager.join(db, ev.event_id, second)
        waitlist_manager.join(db, ev.event_id, vip, priority=5)
        assert [e.user_id for e in waitlist_manager.list_waiting(db, ev.event_id)] == [vip, first, second]


class TestPromote:
    """Promotion only into free spots."""

    def test_promote(self, db):
        ev = _full_event(db)
        user = new_id()
        waitlist_manager.join(db, ev.event_id, user)
        _free_one_spot(db, ev)

        entry = waitlist_manager.promote(db, ev.event_id, user, ev.organizer_id, now=NOW)
        assert entry.status == WaitlistStatus.promoted
        assert entry.promoted_at is not None
        participant = (
            db.query(EventParticipant)
            .filter(EventParticipant.event_id == ev.event_id, EventParticipant.user_id == user)
            .one()
        )
        assert participant.invitation_status == InvitationStatus.accepted
        assert accepted_count(db, ev.event_id) == 3
        db.expire_all()
        assert ev.version == 2

    def test_no_free_spot(self, db):
        ev = _full_event(db)
        user = new_id()
        waitlist_manager.join(db, ev.event_id, user)
        with pytest.raises(ConflictError):
            waitlist_manager.promote(db, ev.event_id, user, ev.organizer_id, now=NOW)

    def test_only_organizer(self, db):
        ev = _full_event(db)
        user = new_id()
        waitlist_manager.join(db, ev.event_id, user)
        _free_one_spot(db, ev)
        with pytest.raises(PermissionDeniedError):
            waitlist_manager.promote(db, ev.event_id, user, user, now=NOW)

    def test_not_on_waitlist(self, db):
        ev = _full_event(db)
        _free_one_spot(db, ev)
        with pytest.raises(NotFoundError):
            waitlist_manager.promote(db, ev.event_id, new_id(), ev.organizer_id, now=NOW)

    def test_promote_next_takes_head(self, db):
        ev = _full_event(db)
        low, high = new_id(), new_id()
        waitlist_manager.join(db, ev.event_id, low)
        waitlist_manager.join(db, ev.event_id, high, priority=1)
        _free_one_spot(db, ev)
        entry = waitlist_manager.promote_next(db, ev.event_id, ev.organizer_id, now=NOW)
        assert entry.user_id == high
        assert [e.user_id for e in waitlist_manager.list_waiting(db, ev.event_id)] == [low]

    def test_promote_next_empty(self, db):
        ev = _full_event(db)
        with pytest.raises(NotFoundError):
            waitlist_manager.promote_next(db, ev.event_id, ev.organizer_id)

    def test_promoted_entry_kept_as_history(self, db):
        ev = _full_event(db)
        user = new_id()
        waitlist_manager.join(db, ev.event_id, user)
        _free_one_spot(db, ev)
        waitlist_manager.promote(db, ev.event_id, user, ev.organizer_id, now=NOW)
        rows = db.query(WaitlistEntry).filter(WaitlistEntry.event_id == ev.event_id).all()
        assert [r.status for r in rows] == [WaitlistStatus.promoted]


class TestConcurrentPromotion:
    """One free spot, two promotions from the same snapshot: exactly one wins."""

    def test_same_snapshot_second_loses(self, session_factory):
        db = session_factory()
        try:
            ev = _full_event(db)
            a, b = new_id(), new_id()
            waitlist_manager.join(db, ev.event_id, a)
            waitlist_manager.join(db, ev.event_id, b)
            _free_one_spot(db, ev)
            db.refresh(ev)
            snapshot = ev.version
            event_id, organizer = ev.event_id, ev.organizer_id
        finally:
            db.close()

        first, second = session_factory(), session_factory()
        try:
            waitlist_manager.promote(first, event_id, a, organizer, expected_version=snapshot, now=NOW)
            with pytest.raises(ConflictError):
                waitlist_manager.promote(second, event_id, b, organizer, expected_version=snapshot, now=NOW)
            assert accepted_count(second, event_id) == 3
        finally:
            first.close()
            second.close()

    def test_racing_threads(self, session_factory):
        db = session_factory()
        try:
            ev = _full_event(db)
            users = [new_id(), new_id()]
            for user in users:
                waitlist_manager.join(db, ev.event_id, user)
            _free_one_spot(db, ev)
            event_id, organizer = ev.event_id, ev.organizer_id
        finally:
            db.close()

        barrier = threading.Barrier(2)
        outcomes = []

        def attempt(user):
            session = session_factory()
            try:
                barrier.wait()
                waitlist_manager.promote(session, event_id, user, organizer, now=NOW)
                outcomes.append("ok")
            except ConflictError:
                outcomes.append("conflict")
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(u,)) for u in users]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)

        assert sorted(outcomes) == ["conflict", "ok"]
        check = session_factory()
        try:
            assert accepted_count(check, event_id) == 3
        finally:
            check.close()
