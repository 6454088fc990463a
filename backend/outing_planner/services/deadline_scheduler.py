"""Deadline sweeps: RSVP expiry, voting expiry and completion.

Every sweep claims each candidate row before touching it, so several
application instances can run the scheduler against one database without
double-processing an event. Each claimed event gets exactly one decision per
sweep; an event whose decision fails is left alone until the next sweep.
"""
import enum
import logging
import socket
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from outing_planner.config import settings
from outing_planner.errors import OrchestratorError
from outing_planner.models.event import Event, EventStatus, utcnow
from outing_planner.models.event_transition import TransitionTrigger
from outing_planner.services.notifications import StatusChangeNotifier
from outing_planner.services.state_machine import EventStateMachine, get_event
from outing_planner.services.vote_aggregator import option_totals, pick_winning_option

logger = logging.getLogger(__name__)

RSVP_STATUSES = (EventStatus.planning, EventStatus.inviting, EventStatus.gathering_preferences)


class Decision(str, enum.Enum):
    cancelled = "cancelled"
    finalized = "finalized"
    completed = "completed"
    awaiting_finalize = "awaiting_finalize"
    skipped = "skipped"


@dataclass
class SweepReport:
    started_at: datetime
    cancelled: list[uuid.UUID] = field(default_factory=list)
    finalized: list[uuid.UUID] = field(default_factory=list)
    completed: list[uuid.UUID] = field(default_factory=list)
    awaiting_finalize: list[uuid.UUID] = field(default_factory=list)
    skipped: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)

    def record(self, event_id: uuid.UUID, decision: Decision) -> None:
        getattr(self, decision.value).append(event_id)

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "cancelled": [str(i) for i in self.cancelled],
            "finalized": [str(i) for i in self.finalized],
            "completed": [str(i) for i in self.completed],
            "awaiting_finalize": [str(i) for i in self.awaiting_finalize],
            "skipped": [str(i) for i in self.skipped],
            "failed": [str(i) for i in self.failed],
        }


class DeadlineScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        worker_id: Optional[str] = None,
        claim_ttl_seconds: Optional[int] = None,
        auto_finalize: Optional[bool] = None,
        notifier: Optional[StatusChangeNotifier] = None,
    ):
        self._session_factory = session_factory
        self.worker_id = worker_id or f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"
        self.claim_ttl_seconds = claim_ttl_seconds or settings.SWEEP_CLAIM_TTL_SECONDS
        self.auto_finalize = settings.AUTO_FINALIZE_ON_VOTING_DEADLINE if auto_finalize is None else auto_finalize
        self._notifier = notifier

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or utcnow()
        report = SweepReport(started_at=now)
        for event_id in self._candidates(now):
            try:
                decision = self._process(event_id, now)
            except Exception:
                logger.exception("Deadline sweep failed for event %s; retrying next cycle", event_id)
                report.failed.append(event_id)
                continue
            report.record(event_id, decision)

        logger.info(
            "Sweep by %s: %d cancelled, %d finalized, %d completed, %d awaiting finalize, %d failed",
            self.worker_id, len(report.cancelled), len(report.finalized), len(report.completed),
            len(report.awaiting_finalize), len(report.failed),
        )
        return report

    def _candidates(self, now: datetime) -> list[uuid.UUID]:
        db = self._session_factory()
        try:
            rows = (
                db.query(Event.event_id)
                .filter(
                    or_(Event.claimed_by.is_(None), Event.claim_expires_at <= now),
                    or_(
                        Event.status.in_(RSVP_STATUSES) & (Event.rsvp_deadline <= now),
                        (Event.status == EventStatus.voting) & (Event.voting_deadline <= now),
                        (Event.status == EventStatus.confirmed) & (Event.scheduled_date <= now.date()),
                    ),
                )
                .order_by(Event.created_at)
                .all()
            )
        finally:
            db.close()
        return [row.event_id for row in rows]

    def _process(self, event_id: uuid.UUID, now: datetime) -> Decision:
        db = self._session_factory()
        machine = EventStateMachine(db, self._notifier)
        try:
            if not machine.claim(event_id, self.worker_id, now, self.claim_ttl_seconds):
                logger.debug("Event %s is claimed by another worker", event_id)
                return Decision.skipped
            try:
                event = get_event(db, event_id)
                return self._decide(db, machine, event, now)
            except OrchestratorError as exc:
                machine.rollback()
                logger.info("No sweep decision for event %s: %s", event_id, exc.message)
                return Decision.skipped
            except Exception:
                machine.rollback()
                raise
            finally:
                machine.release(event_id, self.worker_id)
        finally:
            db.close()

    def _decide(self, db: Session, machine: EventStateMachine, event: Event, now: datetime) -> Decision:
        if event.status in RSVP_STATUSES:
            check = machine.can_transition(event, EventStatus.cancelled, TransitionTrigger.scheduler, now=now)
            if not check.ok:
                return Decision.skipped
            machine.transition(
                event.event_id, EventStatus.cancelled,
                trigger=TransitionTrigger.scheduler,
                reason="RSVP deadline passed without enough accepted participants",
                expected_version=event.version,
                now=now,
            )
            logger.info("Cancelled event %s: RSVP deadline passed", event.event_id)
            return Decision.cancelled

        if event.status == EventStatus.voting:
            return self._close_voting(db, machine, event, now)

        if event.status == EventStatus.confirmed:
            check = machine.can_transition(event, EventStatus.completed, TransitionTrigger.scheduler, now=now)
            if not check.ok:
                return Decision.skipped
            machine.transition(
                event.event_id, EventStatus.completed,
                trigger=TransitionTrigger.scheduler,
                expected_version=event.version,
                now=now,
            )
            logger.info("Completed event %s", event.event_id)
            return Decision.completed

        return Decision.skipped

    def _close_voting(self, db: Session, machine: EventStateMachine, event: Event, now: datetime) -> Decision:
        if not option_totals(db, event.event_id):
            machine.transition(
                event.event_id, EventStatus.cancelled,
                trigger=TransitionTrigger.scheduler,
                reason="Voting deadline passed without any votes",
                expected_version=event.version,
                now=now,
            )
            logger.info("Cancelled event %s: no votes before the voting deadline", event.event_id)
            return Decision.cancelled

        winner = pick_winning_option(db, event.event_id)
        if winner is None or not self.auto_finalize:
            logger.info("Event %s voting closed; awaiting organizer finalize", event.event_id)
            return Decision.awaiting_finalize

        machine.transition(
            event.event_id, EventStatus.confirmed,
            trigger=TransitionTrigger.scheduler,
            reason="Voting deadline passed",
            expected_version=event.version,
            final_option_id=winner.option_id,
            final_place_id=winner.place_id,
            now=now,
        )
        logger.info("Finalized event %s on option %s after voting deadline", event.event_id, winner.option_id)
        return Decision.finalized
