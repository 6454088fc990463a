"""Outbound hook fired after every committed status transition.

Chat and notification subsystems subscribe here; the orchestrator itself only
publishes ``(event_id, old_status, new_status)``.
"""
import logging
import threading
import uuid
from typing import Callable, Optional

from outing_planner.models.event import EventStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[uuid.UUID, Optional[EventStatus], EventStatus], None]


class StatusChangeNotifier:
    def __init__(self):
        self._listeners: list[StatusListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: StatusListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def on_event_status_changed(
        self, event_id: uuid.UUID, old_status: Optional[EventStatus], new_status: EventStatus,
    ) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            # The transition is already committed; a failing subscriber must not undo it
            try:
                listener(event_id, old_status, new_status)
            except Exception:
                logger.exception("Status listener %r failed for event %s", listener, event_id)


status_notifier = StatusChangeNotifier()
