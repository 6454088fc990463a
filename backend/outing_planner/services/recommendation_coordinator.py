"""Asynchronous AI venue recommendation runs.

``trigger`` moves the event into ai_recommending and hands one call to the
external service to a worker pool. The call is bounded by
``RECOMMENDATION_TIMEOUT_SECONDS``; whatever happens, the event is never
cancelled from here. A result that arrives after the event was cancelled (or
left ai_recommending some other way) is dropped.
"""
import enum
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Optional

from sqlalchemy.orm import Session

from outing_planner.config import settings
from outing_planner.database import SessionLocal
from outing_planner.errors import (
    ExternalServiceTimeout,
    OrchestratorError,
    PermissionDeniedError,
    StateError,
)
from outing_planner.models.event import EventStatus, utcnow
from outing_planner.models.event_transition import TransitionTrigger
from outing_planner.models.participant import EventParticipant, InvitationStatus
from outing_planner.models.venue_option import SuggestionSource, VenueOption
from outing_planner.schemas.recommendation import RecommendationProgress, VenueSuggestion
from outing_planner.services.notifications import StatusChangeNotifier, status_notifier
from outing_planner.services.recommendation_service import OpenAIRecommendationService, RecommendationService
from outing_planner.services.state_machine import EventStateMachine, get_event

logger = logging.getLogger(__name__)

STEP_COLLECTING = (1, "collecting_preferences", 10)
STEP_REQUESTING = (2, "requesting_recommendations", 40)
STEP_COMPLETED = (3, "completed", 100)


class RecommendationOutcome(str, enum.Enum):
    completed = "completed"
    empty = "empty"
    timed_out = "timed_out"
    failed = "failed"
    discarded = "discarded"


class CancellationToken:
    """Per-run flag flipped when the run's result must no longer be applied."""

    def __init__(self, event_id: uuid.UUID):
        self.event_id = event_id
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


def collect_preferences(db: Session, event_id: uuid.UUID) -> tuple[list[dict], int]:
    """Return (submitted preferences, number of accepted participants)."""
    accepted = (
        db.query(EventParticipant)
        .filter(
            EventParticipant.event_id == event_id,
            EventParticipant.invitation_status == InvitationStatus.accepted,
        )
        .all()
    )
    submitted = [
        {"user_id": str(p.user_id), "preferences": p.preferences}
        for p in accepted
        if p.preferences
    ]
    return submitted, len(accepted)


class RecommendationCoordinator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        service: Optional[RecommendationService] = None,
        notifier: Optional[StatusChangeNotifier] = None,
        timeout_seconds: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._service = service or OpenAIRecommendationService()
        self._notifier = notifier or status_notifier
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.RECOMMENDATION_TIMEOUT_SECONDS
        workers = max_workers or settings.RECOMMENDATION_WORKERS
        self._runs = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="recommend")
        # Separate pool so a hung external call never blocks the run that is waiting on it
        self._calls = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="recommend-call")
        self._tokens: dict[uuid.UUID, CancellationToken] = {}
        self._lock = threading.Lock()
        self._notifier.subscribe(self._on_status_changed)

    # -- public API ------------------------------------------------

    def trigger(
        self,
        event_id: uuid.UUID,
        actor_id: uuid.UUID,
        location: Optional[str] = None,
        radius_km: Optional[float] = None,
    ) -> Future:
        """Start (or retry) a recommendation run and return its future.

        The future resolves to a ``RecommendationOutcome``.
        """
        db = self._session_factory()
        try:
            event = get_event(db, event_id)
            if event.organizer_id != actor_id:
                raise PermissionDeniedError("Only the organizer may request recommendations")

            machine = EventStateMachine(db, self._notifier)
            now = utcnow()
            if event.status == EventStatus.gathering_preferences:
                machine.transition(
                    event_id, EventStatus.ai_recommending,
                    trigger=TransitionTrigger.organizer, actor_id=actor_id, now=now,
                )
            elif event.status == EventStatus.ai_recommending:
                machine.touch(event_id, event.version, now, ai_analysis_started_at=now)
                machine.commit()
                logger.info("Retrying recommendations for event %s", event_id)
            else:
                raise StateError(
                    "Recommendations can only be requested while gathering preferences",
                    {"status": event.status.value},
                )
            preferences, total = collect_preferences(db, event_id)
        finally:
            db.close()

        token = self._issue_token(event_id)
        progress = self._progress(STEP_COLLECTING, preferences, total, radius_km)
        self._store_progress(event_id, token, progress)
        return self._runs.submit(self._run, event_id, token, preferences, total, location, radius_km)

    def progress(self, event_id: uuid.UUID) -> Optional[RecommendationProgress]:
        db = self._session_factory()
        try:
            raw = get_event(db, event_id).ai_analysis_progress
        finally:
            db.close()
        return RecommendationProgress.model_validate(raw) if raw else None

    def close(self) -> None:
        self._notifier.unsubscribe(self._on_status_changed)
        with self._lock:
            for token in self._tokens.values():
                token.cancel()
            self._tokens.clear()
        self._runs.shutdown(wait=False)
        self._calls.shutdown(wait=False, cancel_futures=True)

    # -- worker ----------------------------------------------------

    def _run(self, event_id, token, preferences, total, location, radius_km) -> RecommendationOutcome:
        progress = self._progress(STEP_REQUESTING, preferences, total, radius_km)
        self._store_progress(event_id, token, progress)

        try:
            suggestions = self._call_service(event_id, preferences, location, radius_km)
        except ExternalServiceTimeout as exc:
            logger.warning("Recommendations for event %s timed out: %s", event_id, exc.message)
            progress = progress.model_copy(update={"timed_out": True, "error": exc.message, "last_updated": utcnow()})
            self._store_progress(event_id, token, progress)
            self._retire_token(token)
            return RecommendationOutcome.timed_out
        except Exception as exc:
            logger.exception("Recommendation service failed for event %s", event_id)
            progress = progress.model_copy(update={"error": str(exc), "last_updated": utcnow()})
            self._store_progress(event_id, token, progress)
            self._retire_token(token)
            return RecommendationOutcome.failed

        try:
            if token.cancelled:
                logger.info("Discarding late recommendations for cancelled event %s", event_id)
                return RecommendationOutcome.discarded
            if not suggestions:
                logger.info("No recommendations for event %s; it stays in ai_recommending", event_id)
                progress = progress.model_copy(update={"venues_found": 0, "last_updated": utcnow()})
                self._store_progress(event_id, token, progress)
                return RecommendationOutcome.empty
            return self._apply(event_id, token, suggestions, preferences, total, radius_km)
        finally:
            self._retire_token(token)

    def _call_service(self, event_id, preferences, location, radius_km) -> list[VenueSuggestion]:
        call = self._calls.submit(
            self._service.generate_recommendations, event_id, preferences, location, radius_km,
        )
        try:
            return call.result(timeout=self._timeout)
        except FutureTimeout:
            call.cancel()
            raise ExternalServiceTimeout(
                f"Recommendation service did not answer within {self._timeout:g}s",
                {"event_id": str(event_id), "timeout_seconds": self._timeout},
            )

    def _apply(self, event_id, token, suggestions, preferences, total, radius_km) -> RecommendationOutcome:
        db = self._session_factory()
        machine = EventStateMachine(db, self._notifier)
        try:
            event = get_event(db, event_id)
            if token.cancelled or event.status != EventStatus.ai_recommending:
                logger.info(
                    "Discarding recommendations for event %s (status %s)", event_id, event.status.value,
                )
                return RecommendationOutcome.discarded

            for suggestion in suggestions:
                db.add(VenueOption(
                    event_id=event_id,
                    place_id=suggestion.place_id,
                    external_place_name=suggestion.external_place_name,
                    ai_score=suggestion.ai_score,
                    reasoning=suggestion.reasoning,
                    verification_status=suggestion.verification_status,
                    suggested_by=SuggestionSource.ai,
                ))
            db.flush()
            progress = self._progress(STEP_COMPLETED, preferences, total, radius_km).model_copy(
                update={"venues_found": len(suggestions), "final_recommendations_count": len(suggestions)},
            )
            machine.transition(
                event_id, EventStatus.voting,
                trigger=TransitionTrigger.coordinator,
                expected_version=event.version,
                reason=f"{len(suggestions)} recommendations",
                commit=False,
            )
            machine.commit()
            machine.record_progress(event_id, progress.model_dump(mode="json"))
        except OrchestratorError as exc:
            machine.rollback()
            logger.warning("Could not apply recommendations to event %s: %s", event_id, exc.message)
            return RecommendationOutcome.discarded
        finally:
            db.close()

        logger.info("Stored %d recommendations for event %s; voting is open", len(suggestions), event_id)
        return RecommendationOutcome.completed

    # -- tokens and progress -------------------------------------

    def _issue_token(self, event_id: uuid.UUID) -> CancellationToken:
        token = CancellationToken(event_id)
        with self._lock:
            previous = self._tokens.get(event_id)
            if previous is not None:
                # A manual retry supersedes the earlier run
                previous.cancel()
            self._tokens[event_id] = token
        return token

    def _retire_token(self, token: CancellationToken) -> None:
        with self._lock:
            if self._tokens.get(token.event_id) is token:
                del self._tokens[token.event_id]

    def _on_status_changed(self, event_id, old_status, new_status) -> None:
        if new_status != EventStatus.cancelled:
            return
        with self._lock:
            token = self._tokens.pop(event_id, None)
        if token is not None:
            token.cancel()
            logger.info("Cancelled in-flight recommendations for event %s", event_id)

    @staticmethod
    def _progress(step, preferences, total, radius_km) -> RecommendationProgress:
        number, name, percentage = step
        return RecommendationProgress(
            current_step=number,
            current_step_name=name,
            progress_percentage=percentage,
            preferences_collected=len(preferences),
            total_participants=total,
            search_radius_km=radius_km,
            last_updated=utcnow(),
        )

    def _store_progress(self, event_id, token, progress: RecommendationProgress) -> None:
        if token.cancelled:
            return
        db = self._session_factory()
        try:
            EventStateMachine(db, self._notifier).record_progress(event_id, progress.model_dump(mode="json"))
        finally:
            db.close()


_coordinator: Optional[RecommendationCoordinator] = None
_coordinator_lock = threading.Lock()


def get_coordinator() -> RecommendationCoordinator:
    """FastAPI dependency returning the process-wide coordinator."""
    global _coordinator
    with _coordinator_lock:
        if _coordinator is None:
            _coordinator = RecommendationCoordinator(SessionLocal)
        return _coordinator


def shutdown_coordinator() -> None:
    global _coordinator
    with _coordinator_lock:
        if _coordinator is not None:
            _coordinator.close()
            _coordinator = None
