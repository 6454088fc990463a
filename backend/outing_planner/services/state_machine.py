"""Event lifecycle state machine: the single mutation gateway for Event rows.

Every status change, version bump and scheduler lease goes through
``EventStateMachine``. A transition is evaluated against the current row and
then written with one conditional UPDATE guarded by the event's version, so an
organizer action racing a scheduler sweep cannot both succeed: the loser gets
``StaleVersionError`` and must re-read.

Status-change notifications are queued per session and published only after
the surrounding transaction commits.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from outing_planner.config import settings
from outing_planner.errors import (
    NotFoundError,
    QuorumNotMetError,
    StaleVersionError,
    StateError,
    ValidationError,
)
from outing_planner.models.event import ACTIVE_STATUSES, Event, EventStatus, utcnow
from outing_planner.models.event_transition import EventTransition, TransitionTrigger
from outing_planner.models.participant import EventParticipant, InvitationStatus
from outing_planner.models.venue_option import VenueOption, Vote
from outing_planner.models.waitlist import WaitlistEntry, WaitlistStatus
from outing_planner.services.notifications import StatusChangeNotifier, status_notifier
from outing_planner.services.quorum import event_quorum
from outing_planner.timeutil import as_utc, event_start_utc

logger = logging.getLogger(__name__)


# ── Typed evaluation result ────────────────────────────────────────

class TransitionOutcome(str, enum.Enum):
    applied = "applied"
    invalid_edge = "invalid_edge"
    guard_failed = "guard_failed"
    stale_version = "stale_version"


@dataclass(frozen=True)
class GuardContext:
    """Everything a guard may look at besides the event row itself."""

    now: datetime
    trigger: TransitionTrigger
    accepted_count: int = 0
    option_count: int = 0
    vote_count: int = 0
    reason: Optional[str] = None
    final_option_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class TransitionResult:
    outcome: TransitionOutcome
    source: EventStatus
    target: EventStatus
    message: str = ""
    error: Optional[type] = None

    @property
    def ok(self) -> bool:
        return self.outcome == TransitionOutcome.applied

    def raise_for_outcome(self) -> None:
        if self.ok:
            return
        error_cls = self.error or StateError
        raise error_cls(
            self.message,
            {"from_status": self.source.value, "to_status": self.target.value, "outcome": self.outcome.value},
        )


GuardFailure = tuple[type, str]
Guard = Callable[[Event, GuardContext], Optional[GuardFailure]]


# ── Guards ─────────────────────────────────────────────────────────

def _always(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    return None


def _reason_given(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    if not ctx.reason or not ctx.reason.strip():
        return ValidationError, "A cancellation reason is required"
    return None


def _final_venue_chosen(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    if ctx.final_option_id is None:
        return ValidationError, "A final venue option must be chosen"
    return None


def _quorum_met(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    required = event_quorum(event)
    if ctx.accepted_count < required:
        return QuorumNotMetError, f"Quorum not met: {ctx.accepted_count} accepted, {required} required"
    return None


def _rsvp_expired_under_floor(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    deadline = as_utc(event.rsvp_deadline)
    if deadline is None or deadline > ctx.now:
        return StateError, "RSVP deadline has not elapsed"
    if ctx.accepted_count < settings.MIN_ACCEPTED_FLOOR:
        return None
    if settings.AUTO_CANCEL_BELOW_QUORUM and ctx.accepted_count < event_quorum(event):
        return None
    return StateError, f"{ctx.accepted_count} participants accepted; no automatic cancellation"


def _has_options(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    if ctx.option_count < 1:
        return StateError, "No venue recommendations are available"
    return None


def _voting_deadline_elapsed(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    deadline = as_utc(event.voting_deadline)
    if deadline is None or deadline > ctx.now:
        return StateError, "Voting deadline has not elapsed"
    return None


def _forced_finalize(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    return _voting_deadline_elapsed(event, ctx) or _final_venue_chosen(event, ctx)


def _voting_expired_without_votes(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    failure = _voting_deadline_elapsed(event, ctx)
    if failure:
        return failure
    if ctx.vote_count:
        return StateError, "Votes exist; the event must be finalized instead"
    return None


def _completion_buffer_elapsed(event: Event, ctx: GuardContext) -> Optional[GuardFailure]:
    due = event_start_utc(event) + timedelta(hours=settings.COMPLETION_BUFFER_HOURS)
    if ctx.now < due:
        return StateError, "Event has not yet passed its completion buffer"
    return None


# ── Transition table ───────────────────────────────────────────────

@dataclass(frozen=True)
class Edge:
    sources: frozenset
    target: EventStatus
    triggers: frozenset
    guard: Guard
    description: str


S = EventStatus
T = TransitionTrigger
_ORGANIZER = frozenset({T.organizer})
_ORGANIZER_OR_SYSTEM = frozenset({T.organizer, T.system})
_SCHEDULER = frozenset({T.scheduler})

EDGES: tuple[Edge, ...] = (
    Edge(frozenset({S.draft}), S.planning, _ORGANIZER_OR_SYSTEM, _always, "organizer starts planning"),
    Edge(frozenset({S.planning}), S.inviting, _ORGANIZER_OR_SYSTEM, _always, "invitations sent"),
    Edge(frozenset({S.draft, S.planning}), S.confirmed, _ORGANIZER, _final_venue_chosen,
         "venue supplied at creation"),
    Edge(frozenset({S.inviting}), S.gathering_preferences, _ORGANIZER_OR_SYSTEM, _quorum_met, "quorum reached"),
    Edge(frozenset({S.planning, S.inviting, S.gathering_preferences}), S.cancelled, _SCHEDULER,
         _rsvp_expired_under_floor, "RSVP deadline passed without enough participants"),
    Edge(frozenset({S.gathering_preferences}), S.ai_recommending, _ORGANIZER, _quorum_met,
         "recommendation generation requested"),
    Edge(frozenset({S.ai_recommending}), S.voting, frozenset({T.coordinator}), _has_options,
         "recommendations available"),
    Edge(frozenset({S.voting}), S.confirmed, _ORGANIZER, _final_venue_chosen, "organizer finalized"),
    Edge(frozenset({S.voting}), S.confirmed, _SCHEDULER, _forced_finalize, "voting deadline forced finalize"),
    Edge(frozenset({S.voting}), S.cancelled, _SCHEDULER, _voting_expired_without_votes,
         "voting deadline passed without votes"),
    Edge(frozenset({S.confirmed}), S.completed, _SCHEDULER, _completion_buffer_elapsed, "event took place"),
    Edge(frozenset(ACTIVE_STATUSES), S.cancelled, _ORGANIZER, _reason_given, "organizer cancelled"),
)


def evaluate(event: Event, target: EventStatus, ctx: GuardContext) -> TransitionResult:
    """Decide whether ``event`` may move to ``target``. Pure: never writes."""
    source = event.status
    candidates = [edge for edge in EDGES if source in edge.sources and edge.target == target]
    if not candidates:
        return TransitionResult(
            TransitionOutcome.invalid_edge, source, target,
            f"Cannot transition from {source.value} to {target.value}",
        )

    permitted = [edge for edge in candidates if ctx.trigger in edge.triggers]
    if not permitted:
        return TransitionResult(
            TransitionOutcome.invalid_edge, source, target,
            f"Transition from {source.value} to {target.value} is not available to {ctx.trigger.value}",
        )

    first_failure: Optional[GuardFailure] = None
    for edge in permitted:
        failure = edge.guard(event, ctx)
        if failure is None:
            return TransitionResult(TransitionOutcome.applied, source, target, edge.description)
        first_failure = first_failure or failure

    error_cls, message = first_failure
    return TransitionResult(TransitionOutcome.guard_failed, source, target, message, error_cls)


# ── Read helpers shared by the services ────────────────────────────

def accepted_count(db: Session, event_id: uuid.UUID) -> int:
    return (
        db.query(func.count(EventParticipant.user_id))
        .filter(
            EventParticipant.event_id == event_id,
            EventParticipant.invitation_status == InvitationStatus.accepted,
        )
        .scalar()
    )


def get_event(db: Session, event_id: uuid.UUID) -> Event:
    # Always reload: the identity map may hold a copy older than the row
    event = db.query(Event).filter(Event.event_id == event_id).populate_existing().first()
    if not event:
        raise NotFoundError("Event", event_id)
    return event


# ── The gateway ────────────────────────────────────────────────────

class EventStateMachine:
    """Guarded, versioned writer for Event rows bound to one session."""

    def __init__(self, db: Session, notifier: Optional[StatusChangeNotifier] = None):
        self.db = db
        self.notifier = notifier or status_notifier
        self._pending: list[tuple[uuid.UUID, Optional[EventStatus], EventStatus]] = []

    # -- evaluation ------------------------------------------------

    def context(
        self,
        event: Event,
        trigger: TransitionTrigger,
        now: Optional[datetime] = None,
        reason: Optional[str] = None,
        final_option_id: Optional[uuid.UUID] = None,
    ) -> GuardContext:
        options = self.db.query(func.count(VenueOption.option_id)).filter(VenueOption.event_id == event.event_id)
        votes = self.db.query(func.count(Vote.vote_id)).filter(Vote.event_id == event.event_id)
        return GuardContext(
            now=now or utcnow(),
            trigger=trigger,
            accepted_count=accepted_count(self.db, event.event_id),
            option_count=options.scalar(),
            vote_count=votes.scalar(),
            reason=reason,
            final_option_id=final_option_id,
        )

    def can_transition(self, event: Event, target: EventStatus, trigger: TransitionTrigger, **kwargs) -> TransitionResult:
        return evaluate(event, target, self.context(event, trigger, **kwargs))

    # -- writes ----------------------------------------------------

    def transition(
        self,
        event_id: uuid.UUID,
        target: EventStatus,
        *,
        trigger: TransitionTrigger = TransitionTrigger.organizer,
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
        final_option_id: Optional[uuid.UUID] = None,
        final_place_id: Optional[uuid.UUID] = None,
        voting_deadline: Optional[datetime] = None,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> Event:
        """Validate and apply one status transition.

        Raises ``StateError`` for a missing edge, ``QuorumNotMetError`` or
        ``ValidationError`` for failed guards and ``StaleVersionError`` when the
        row changed after it was read. Nothing is written in any of those cases.
        """
        now = now or utcnow()
        event = get_event(self.db, event_id)
        if expected_version is None:
            expected_version = event.version
        elif event.version != expected_version:
            raise StaleVersionError(event_id, expected_version)

        source = event.status
        result = evaluate(event, target, self.context(event, trigger, now, reason, final_option_id))
        if not result.ok:
            logger.info(
                "Rejected transition %s -> %s for event %s (%s): %s",
                source.value, target.value, event_id, result.outcome.value, result.message,
            )
            result.raise_for_outcome()

        values = self._entry_values(target, now, actor_id, reason, final_option_id, final_place_id, voting_deadline)
        self._compare_and_swap(event, expected_version, values)

        if target.is_terminal:
            self.db.execute(
                update(WaitlistEntry)
                .where(WaitlistEntry.event_id == event_id, WaitlistEntry.status == WaitlistStatus.waiting)
                .values(status=WaitlistStatus.expired)
                .execution_options(synchronize_session=False)
            )

        self.db.add(EventTransition(
            event_id=event_id,
            from_status=source,
            to_status=target,
            trigger=trigger,
            actor_user_id=actor_id,
            reason=reason or result.message,
            version=expected_version + 1,
        ))
        self._pending.append((event_id, source, target))
        logger.info("Event %s: %s -> %s (%s, %s)", event_id, source.value, target.value, trigger.value, result.message)

        if commit:
            self.commit()
        return event

    def touch(self, event_id: uuid.UUID, expected_version: int, now: Optional[datetime] = None, **values) -> int:
        """Bump the version without a status change.

        Used by writes that change acceptedCount so that any snapshot read
        before them (capacity, quorum) can no longer be committed against.
        Extra keyword arguments are written to the row in the same UPDATE.
        """
        event = get_event(self.db, event_id)
        self._compare_and_swap(event, expected_version, {"updated_at": now or utcnow(), **values})
        return expected_version + 1

    def record_creation(self, event: Event, actor_id: Optional[uuid.UUID], trigger: TransitionTrigger) -> None:
        self.db.add(EventTransition(
            event_id=event.event_id,
            from_status=None,
            to_status=event.status,
            trigger=trigger,
            actor_user_id=actor_id,
            reason="created",
            version=event.version,
        ))
        self._pending.append((event.event_id, None, event.status))

    def record_progress(self, event_id: uuid.UUID, progress: dict) -> None:
        """Store the AI progress record. Not a guarded field, so no version bump."""
        self.db.execute(
            update(Event)
            .where(Event.event_id == event_id)
            .values(ai_analysis_progress=progress)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def claim(self, event_id: uuid.UUID, worker_id: str, now: datetime, ttl_seconds: int) -> bool:
        """Take the scheduler lease on one event; False if another worker holds it."""
        result = self.db.execute(
            update(Event)
            .where(
                Event.event_id == event_id,
                or_(
                    Event.claimed_by.is_(None),
                    Event.claimed_by == worker_id,
                    Event.claim_expires_at <= now,
                ),
            )
            .values(claimed_by=worker_id, claim_expires_at=now + timedelta(seconds=ttl_seconds))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def release(self, event_id: uuid.UUID, worker_id: str) -> None:
        self.db.execute(
            update(Event)
            .where(Event.event_id == event_id, Event.claimed_by == worker_id)
            .values(claimed_by=None, claim_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def history(self, event_id: uuid.UUID) -> list[EventTransition]:
        return (
            self.db.query(EventTransition)
            .filter(EventTransition.event_id == event_id)
            .order_by(EventTransition.created_at, EventTransition.version)
            .all()
        )

    # -- transaction control ---------------------------------------

    def commit(self) -> None:
        self.db.commit()
        pending, self._pending = self._pending, []
        for event_id, old_status, new_status in pending:
            self.notifier.on_event_status_changed(event_id, old_status, new_status)

    def rollback(self) -> None:
        self.db.rollback()
        self._pending = []

    # -- internals -------------------------------------------------

    def _compare_and_swap(self, event: Event, expected_version: int, values: dict) -> None:
        self.db.flush()
        result = self.db.execute(
            update(Event)
            .where(Event.event_id == event.event_id, Event.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleVersionError(event.event_id, expected_version)
        self.db.expire(event)

    @staticmethod
    def _entry_values(
        target: EventStatus,
        now: datetime,
        actor_id: Optional[uuid.UUID],
        reason: Optional[str],
        final_option_id: Optional[uuid.UUID],
        final_place_id: Optional[uuid.UUID],
        voting_deadline: Optional[datetime],
    ) -> dict:
        values: dict = {"status": target, "updated_at": now}
        if target == EventStatus.ai_recommending:
            values["ai_analysis_started_at"] = now
        elif target == EventStatus.voting:
            values["voting_deadline"] = voting_deadline or now + timedelta(hours=settings.VOTING_WINDOW_HOURS)
        elif target == EventStatus.confirmed:
            values.update(confirmed_at=now, final_option_id=final_option_id, final_place_id=final_place_id)
        elif target == EventStatus.completed:
            values["completed_at"] = now
        elif target == EventStatus.cancelled:
            values.update(
                cancelled_at=now,
                cancel_reason=reason,
                cancelled_by_user_id=actor_id,
                final_place_id=None,
            )
        return values
