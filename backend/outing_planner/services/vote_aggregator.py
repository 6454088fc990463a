"""Venue voting: vote casting, statistics, winner selection and finalization."""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from outing_planner.config import settings
from outing_planner.errors import (
    DeadlinePassedError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from outing_planner.models.event import Event, EventStatus, utcnow
from outing_planner.models.event_transition import TransitionTrigger
from outing_planner.models.participant import EventParticipant, InvitationStatus
from outing_planner.models.venue_option import SuggestionSource, VenueOption, VerificationStatus, Vote
from outing_planner.services.state_machine import EventStateMachine, accepted_count, get_event
from outing_planner.timeutil import as_utc

logger = logging.getLogger(__name__)

MANUAL_OPTION_STATUSES = (
    EventStatus.gathering_preferences,
    EventStatus.ai_recommending,
    EventStatus.voting,
)


def _get_option(db: Session, event_id: uuid.UUID, option_id: uuid.UUID) -> VenueOption:
    option = (
        db.query(VenueOption)
        .filter(VenueOption.option_id == option_id, VenueOption.event_id == event_id)
        .first()
    )
    if not option:
        raise NotFoundError("VenueOption", option_id)
    return option


def _validate_value(value: int) -> None:
    # 0 is not a vote; -1 is a veto, 1..VOTE_MAX a rating
    if value == 0 or not settings.VOTE_MIN <= value <= settings.VOTE_MAX:
        raise ValidationError(
            f"Vote value must be {settings.VOTE_MIN} or between 1 and {settings.VOTE_MAX}",
            {"value": value},
        )


def cast_vote(
    db: Session,
    event_id: uuid.UUID,
    option_id: uuid.UUID,
    voter_id: uuid.UUID,
    value: int,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Vote:
    """Record or replace ``voter_id``'s vote on one option.

    Keyed by (event, option, voter), so casting the same vote twice leaves the
    aggregate unchanged.
    """
    now = now or utcnow()
    event = get_event(db, event_id)
    _get_option(db, event_id, option_id)

    if event.status != EventStatus.voting:
        raise StateError("Voting is not open for this event", {"status": event.status.value})
    deadline = as_utc(event.voting_deadline)
    if deadline is not None and now >= deadline:
        raise DeadlinePassedError("Voting deadline has passed", {"voting_deadline": deadline.isoformat()})
    _validate_value(value)

    participant = (
        db.query(EventParticipant)
        .filter(
            EventParticipant.event_id == event_id,
            EventParticipant.user_id == voter_id,
            EventParticipant.invitation_status == InvitationStatus.accepted,
        )
        .first()
    )
    if not participant:
        raise ValidationError("Only accepted participants may vote", {"voter_id": str(voter_id)})

    vote = _upsert(db, event_id, option_id, voter_id, value, comment, now)
    logger.info("Vote %d on option %s of event %s by %s", value, option_id, event_id, voter_id)
    return vote


def _hold_voting_open(db: Session, event_id: uuid.UUID) -> None:
    """Lock the event row for this transaction, provided it is still in voting.

    A finalize or cancel committed after the status was read makes this match
    no row, so the vote is rolled back instead of landing on a closed event.
    """
    result = db.execute(
        update(Event)
        .where(Event.event_id == event_id, Event.status == EventStatus.voting)
        .values(updated_at=Event.updated_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise StateError("Voting closed before the vote was recorded")


def _upsert(db, event_id, option_id, voter_id, value, comment, now) -> Vote:
    def existing():
        return (
            db.query(Vote)
            .filter(Vote.event_id == event_id, Vote.option_id == option_id, Vote.voter_id == voter_id)
            .first()
        )

    vote = existing()
    if vote is None:
        vote = Vote(
            event_id=event_id, option_id=option_id, voter_id=voter_id,
            vote_value=value, comment=comment, voted_at=now,
        )
        db.add(vote)
        _hold_voting_open(db, event_id)
        try:
            db.commit()
            db.refresh(vote)
            return vote
        except IntegrityError:
            # A concurrent request inserted the same key first; fall through to update it
            db.rollback()
            vote = existing()

    vote.vote_value = value
    vote.comment = comment
    vote.voted_at = now
    _hold_voting_open(db, event_id)
    db.commit()
    db.refresh(vote)
    return vote


def option_totals(db: Session, event_id: uuid.UUID) -> dict[uuid.UUID, int]:
    rows = (
        db.query(Vote.option_id, func.sum(Vote.vote_value))
        .filter(Vote.event_id == event_id)
        .group_by(Vote.option_id)
        .all()
    )
    return {option_id: int(total or 0) for option_id, total in rows}


def list_options(db: Session, event_id: uuid.UUID) -> list[VenueOption]:
    return (
        db.query(VenueOption)
        .filter(VenueOption.event_id == event_id)
        .order_by(VenueOption.created_at, VenueOption.option_id)
        .all()
    )


def get_statistics(db: Session, event_id: uuid.UUID, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    event = get_event(db, event_id)
    totals = option_totals(db, event_id)
    counts = dict(
        db.query(Vote.option_id, func.count(Vote.vote_id))
        .filter(Vote.event_id == event_id)
        .group_by(Vote.option_id)
        .all()
    )

    voted_count = (
        db.query(func.count(func.distinct(Vote.voter_id))).filter(Vote.event_id == event_id).scalar()
    )
    total_participants = accepted_count(db, event_id)
    progress = round(voted_count / total_participants * 100, 1) if total_participants else 0.0

    deadline = as_utc(event.voting_deadline)
    time_remaining = None
    if deadline is not None:
        time_remaining = max(deadline - now, timedelta(0))

    return {
        "event_id": event_id,
        "status": event.status,
        "options": [
            {
                "option_id": option.option_id,
                "place_id": option.place_id,
                "external_place_name": option.external_place_name,
                "total": totals.get(option.option_id, 0),
                "vote_count": counts.get(option.option_id, 0),
            }
            for option in list_options(db, event_id)
        ],
        "voted_count": voted_count,
        "total_participants": total_participants,
        "vote_progress": progress,
        "voting_deadline": deadline,
        "time_remaining_seconds": int(time_remaining.total_seconds()) if time_remaining is not None else None,
    }


def pick_winning_option(db: Session, event_id: uuid.UUID) -> Optional[VenueOption]:
    """Highest aggregate wins; ties go to the earliest-created option.

    Options whose system place was rejected by verification are never picked.
    Returns None when nobody has voted.
    """
    totals = option_totals(db, event_id)
    if not totals:
        return None

    eligible = [
        option for option in list_options(db, event_id)
        if option.verification_status != VerificationStatus.rejected and option.option_id in totals
    ]
    if not eligible:
        return None
    # list_options is ordered by created_at, and max() keeps the first maximum
    return max(eligible, key=lambda option: totals[option.option_id])


def _ensure_finalizable(option: VenueOption) -> None:
    if option.verification_status == VerificationStatus.rejected:
        raise ValidationError(
            "The selected venue was rejected by verification",
            {"option_id": str(option.option_id)},
        )


def finalize(
    db: Session,
    event_id: uuid.UUID,
    option_id: uuid.UUID,
    actor_id: uuid.UUID,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Event:
    """Organizer picks the final venue: voting -> confirmed."""
    event = get_event(db, event_id)
    if event.organizer_id != actor_id:
        raise PermissionDeniedError("Only the organizer may finalize the venue")
    option = _get_option(db, event_id, option_id)
    _ensure_finalizable(option)

    event = EventStateMachine(db).transition(
        event_id,
        EventStatus.confirmed,
        trigger=TransitionTrigger.organizer,
        actor_id=actor_id,
        expected_version=expected_version,
        final_option_id=option.option_id,
        final_place_id=option.place_id,
        now=now,
    )
    logger.info("Event %s finalized on option %s", event_id, option_id)
    return event


def add_manual_option(
    db: Session,
    event_id: uuid.UUID,
    actor_id: uuid.UUID,
    place_id: Optional[uuid.UUID] = None,
    external_place_name: Optional[str] = None,
    reasoning: Optional[str] = None,
    verification_status: Optional[VerificationStatus] = None,
) -> VenueOption:
    event = get_event(db, event_id)
    if event.organizer_id != actor_id:
        raise PermissionDeniedError("Only the organizer may add venue options")
    if event.status not in MANUAL_OPTION_STATUSES:
        raise StateError(
            "Venue options can only be added while preferences, recommendations or voting are open",
            {"status": event.status.value},
        )
    if place_id is None and not external_place_name:
        raise ValidationError("A place_id or external_place_name is required")

    if place_id is not None and verification_status is None:
        verification_status = VerificationStatus.pending
    option = VenueOption(
        event_id=event_id,
        place_id=place_id,
        external_place_name=external_place_name,
        reasoning=reasoning,
        verification_status=verification_status,
        suggested_by=SuggestionSource.organizer,
    )
    db.add(option)
    db.commit()
    db.refresh(option)
    logger.info("Organizer %s added option %s to event %s", actor_id, option.option_id, event_id)
    return option
