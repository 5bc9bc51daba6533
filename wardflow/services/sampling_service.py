"""Fixed-cadence sampling tick driving time-triggered edges and snapshots."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from wardflow.domain.models import BedRequest, DailyRecord, OccupancySnapshot, Unit
from wardflow.services.aggregation_service import OccupancyAggregator
from wardflow.services.allocation_service import AllocationProtocolService
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class TickResult:
    released_units: tuple[Unit, ...]
    expired_requests: tuple[BedRequest, ...]
    snapshot: OccupancySnapshot
    closed_record: Optional[DailyRecord] = None


class SamplingClock:
    """Runs ``tick`` every ``sampling_interval_seconds`` on a daemon thread."""

    def __init__(
        self,
        allocation_service: AllocationProtocolService,
        aggregator: OccupancyAggregator,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._allocation_service = allocation_service
        self._aggregator = aggregator
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self, now: Optional[datetime] = None) -> TickResult:
        """Day roll-over, then dwell expiry, then reservation expiry, then the snapshot."""
        now = now or self._clock()
        closed = self._aggregator.roll_over(now)
        released = self._allocation_service.expire_dwell(now)
        expired = self._allocation_service.expire_reservations(now)
        snapshot = self._aggregator.capture(now)
        return TickResult(
            released_units=tuple(released),
            expired_requests=tuple(expired),
            snapshot=snapshot,
            closed_record=closed,
        )

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="wardflow-sampling", daemon=True)
        self._thread.start()
        logger.info(
            "Sampling clock started | %s",
            format_fields(interval_seconds=self._settings.sampling_interval_seconds),
        )

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("Sampling clock stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:  # pragma: no cover - keeps the cadence alive
                logger.exception("Sampling tick failed")
            self._stop_event.wait(self._settings.sampling_interval_seconds)
