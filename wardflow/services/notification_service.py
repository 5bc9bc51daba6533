"""Best-effort notification collaborator for state transitions."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Optional, Protocol

from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


class EventKind(str, Enum):
    REQUEST_SUBMITTED = "request-submitted"
    REQUEST_APPROVED = "request-approved"
    REQUEST_DENIED = "request-denied"
    REQUEST_CANCELLED = "request-cancelled"
    ADMISSION = "admission"
    DISCHARGE = "discharge"
    TRANSFER = "transfer"
    UNIT_UPDATED = "unit-updated"
    OCCUPANCY_ALERT = "occupancy-alert"
    ALERT_ACKNOWLEDGED = "alert-acknowledged"
    CLEANING_JOB = "cleaning-job"
    TRANSFER_REQUEST = "transfer-request"


@dataclass(frozen=True)
class TransitionEvent:
    kind: EventKind
    at: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "at": self.at.isoformat(), "payload": dict(self.payload)}


class Notifier(Protocol):
    def notify(self, event: TransitionEvent) -> None:
        ...


class InMemoryNotifier:
    """Logs every event and keeps the most recent ones for polling clients."""

    def __init__(self, max_events: int = 200) -> None:
        self._events: deque[TransitionEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def notify(self, event: TransitionEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.info("Event | %s", format_fields(kind=event.kind.value, **event.payload))

    def recent(self, limit: Optional[int] = None) -> list[TransitionEvent]:
        with self._lock:
            events = list(self._events)
        if limit is not None:
            events = events[-limit:]
        return events


def dispatch(notifier: Optional[Notifier], event: TransitionEvent) -> None:
    """Deliver an event; delivery failures are logged and never propagate."""
    if notifier is None:
        return
    try:
        notifier.notify(event)
    except Exception:
        logger.exception("Notification delivery failed | kind=%s", event.kind.value)
