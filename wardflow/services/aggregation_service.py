"""Occupancy aggregation: point-in-time snapshots, hourly capture and daily records."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from threading import Lock
from typing import TYPE_CHECKING, Callable, Optional, Union

from wardflow.domain.errors import WardFlowError
from wardflow.domain.models import (
    AlertLevel,
    DailyRecord,
    OccupancySnapshot,
    UnitStatus,
    WardStats,
)
from wardflow.domain.registry import BedRegistry
from wardflow.repository.data_repository import DataRepository
from wardflow.services.notification_service import (
    EventKind,
    Notifier,
    TransitionEvent,
    dispatch,
)
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import format_fields, get_logger

if TYPE_CHECKING:
    from wardflow.services.alert_service import AlertService


logger = get_logger(__name__)

HISTORY_WINDOWS = {"today": 0, "7d": 7, "30d": 30}


class AggregationValidationError(WardFlowError):
    """Raised when a history window cannot be interpreted."""


def occupancy_rate(occupied: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(min(max(100.0 * occupied / total, 0.0), 100.0), 2)


def build_stats(ward_id: Optional[str], counts: Counter[UnitStatus]) -> WardStats:
    total = sum(counts.values())
    occupied = counts.get(UnitStatus.OCCUPIED, 0)
    return WardStats(
        ward_id=ward_id,
        total=total,
        available=counts.get(UnitStatus.AVAILABLE, 0),
        occupied=occupied,
        cleaning=counts.get(UnitStatus.CLEANING, 0),
        reserved=counts.get(UnitStatus.RESERVED, 0),
        maintenance=counts.get(UnitStatus.MAINTENANCE, 0),
        occupancy_rate=occupancy_rate(occupied, total),
    )


def classify_alert(rate: float, settings: Settings) -> AlertLevel:
    if rate >= settings.alert_emergency_threshold:
        return AlertLevel.EMERGENCY
    if rate >= settings.alert_critical_threshold:
        return AlertLevel.CRITICAL
    if rate >= settings.alert_warning_threshold:
        return AlertLevel.WARNING
    return AlertLevel.NONE


class OccupancyAggregator:
    """Reads the registry and accumulates the in-progress day's snapshots.

    Every captured snapshot is written to the repository as it is taken, so an
    unfinished day survives a restart. The day is folded into a persisted
    DailyRecord by ``roll_over`` or by the first capture of a later date.
    """

    def __init__(
        self,
        registry: BedRegistry,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
        alerts: Optional[AlertService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._registry = registry
        self._repository = repository
        self._notifier = notifier
        self._alerts = alerts
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = Lock()
        self._restored = False
        self._current_day: Optional[date] = None
        self._snapshots: list[OccupancySnapshot] = []

    def compute_snapshot(self, at: Optional[datetime] = None) -> OccupancySnapshot:
        """Derive per-ward and hospital-wide statistics from one registry read."""
        timestamp = at or self._clock()
        counts = self._registry.status_counts()
        wards = tuple(build_stats(ward_id, ward_counts) for ward_id, ward_counts in counts.items())
        hospital_counts: Counter[UnitStatus] = Counter()
        for ward_counts in counts.values():
            hospital_counts.update(ward_counts)
        hospital = build_stats(None, hospital_counts)
        return OccupancySnapshot(
            timestamp=timestamp,
            hospital=hospital,
            wards=wards,
            alert_level=classify_alert(hospital.occupancy_rate, self._settings),
        )

    def get_snapshot(self) -> OccupancySnapshot:
        return self.compute_snapshot()

    def restore(self) -> Optional[date]:
        """Reload unfinished days from the repository; returns the open day, if any."""
        with self._lock:
            self._restore_locked()
            return self._current_day

    def _restore_locked(self) -> None:
        if self._restored:
            return
        self._restored = True
        if self._repository is None:
            return
        by_day: dict[date, list[OccupancySnapshot]] = {}
        for record_date, snapshot in self._repository.list_open_snapshots():
            by_day.setdefault(record_date, []).append(snapshot)
        if not by_day:
            return
        *stale_days, open_day = sorted(by_day)
        for day in stale_days:
            hourly = by_day[day]
            self._fold_locked(day, tuple(hourly), hourly[-1], hourly[-1].timestamp)
        self._current_day = open_day
        self._snapshots = list(by_day[open_day])
        logger.info(
            "Open day restored | %s",
            format_fields(
                record_date=open_day.isoformat(),
                hourly_samples=len(self._snapshots),
                folded_days=len(stale_days),
            ),
        )

    def roll_over(self, at: Optional[datetime] = None) -> Optional[DailyRecord]:
        """Fold the open day when ``at`` falls on a later date."""
        timestamp = at or self._clock()
        with self._lock:
            self._restore_locked()
            if self._current_day is None or timestamp.date() == self._current_day:
                return None
            return self._close_day_locked(timestamp)

    def capture(self, at: Optional[datetime] = None) -> OccupancySnapshot:
        """Record an hourly snapshot, closing the previous day when the date rolls."""
        timestamp = at or self._clock()
        closed: Optional[DailyRecord] = None
        with self._lock:
            self._restore_locked()
            if self._current_day is not None and timestamp.date() != self._current_day:
                closed = self._close_day_locked(timestamp)
            snapshot = self.compute_snapshot(timestamp)
            if self._repository is not None:
                self._repository.save_snapshot(timestamp.date(), snapshot)
            self._current_day = timestamp.date()
            self._snapshots.append(snapshot)

        logger.info(
            "Snapshot captured | %s",
            format_fields(
                timestamp=timestamp.isoformat(),
                hospital_rate=snapshot.hospital.occupancy_rate,
                alert_level=snapshot.alert_level.value,
                closed_day=closed.record_date.isoformat() if closed else None,
            ),
        )
        if self._alerts is not None:
            self._alerts.record_snapshot(snapshot)
        if snapshot.alert_level != AlertLevel.NONE:
            dispatch(
                self._notifier,
                TransitionEvent(
                    kind=EventKind.OCCUPANCY_ALERT,
                    at=timestamp,
                    payload={
                        "level": snapshot.alert_level.value,
                        "occupancy_rate": snapshot.hospital.occupancy_rate,
                    },
                ),
            )
        return snapshot

    def close_day(self, at: Optional[datetime] = None) -> Optional[DailyRecord]:
        """Fold the in-progress day immediately; returns None when nothing was captured."""
        with self._lock:
            self._restore_locked()
            return self._close_day_locked(at or self._clock())

    def _close_day_locked(self, at: datetime) -> Optional[DailyRecord]:
        if self._current_day is None:
            return None
        record = self._fold_locked(
            self._current_day, tuple(self._snapshots), self.compute_snapshot(at), at
        )
        self._current_day = None
        self._snapshots = []
        return record

    def _fold_locked(
        self,
        day: date,
        hourly: tuple[OccupancySnapshot, ...],
        final: OccupancySnapshot,
        at: datetime,
    ) -> DailyRecord:
        record = self._build_record(day, hourly, final, at)
        if self._repository is not None:
            self._repository.save_daily_record(record)
            self._repository.delete_snapshots(day)
        logger.info(
            "Daily record closed | %s",
            format_fields(
                record_date=record.record_date.isoformat(),
                hourly_samples=len(hourly),
                hospital_rate=record.hospital.occupancy_rate,
                peak_hour=record.peak_hour,
            ),
        )
        return record

    def _build_record(
        self,
        day: date,
        hourly: tuple[OccupancySnapshot, ...],
        final: OccupancySnapshot,
        at: datetime,
    ) -> DailyRecord:
        return DailyRecord(
            record_date=day,
            timestamp=at,
            hospital=final.hospital,
            wards=final.wards,
            hourly=hourly,
            peak_hour=final.hospital.occupancy_rate >= self._settings.peak_hour_threshold,
        )

    def current_day_snapshots(self) -> list[OccupancySnapshot]:
        with self._lock:
            self._restore_locked()
            return list(self._snapshots)

    def get_history(
        self,
        window: Union[str, int] = "7d",
        *,
        today: Optional[date] = None,
    ) -> list[DailyRecord]:
        """Daily records for ``today``, ``7d``, ``30d`` or N days back.

        The unfinished day is included as a provisional record built from its
        latest snapshot, so ``today`` is never empty once a capture has run.
        """
        if isinstance(window, str):
            if window in HISTORY_WINDOWS:
                days = HISTORY_WINDOWS[window]
            elif window.isdigit():
                days = int(window)
            else:
                raise AggregationValidationError(
                    "window must be one of today, 7d, 30d or a number of days"
                )
        else:
            days = int(window)
        if days < 0:
            raise AggregationValidationError("window must not be negative")
        end = today or self._clock().date()
        since = end - timedelta(days=days)
        records: list[DailyRecord] = []
        if self._repository is not None:
            records = self._repository.list_daily_records(since=since, until=end)
        with self._lock:
            self._restore_locked()
            open_day = self._current_day
            hourly = tuple(self._snapshots)
        stored_days = {record.record_date for record in records}
        if open_day is not None and hourly and since <= open_day <= end and open_day not in stored_days:
            records.append(self._build_record(open_day, hourly, hourly[-1], hourly[-1].timestamp))
            records.sort(key=lambda record: record.record_date)
        return records
