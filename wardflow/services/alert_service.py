"""Persisted occupancy alerts raised from captured snapshots."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Optional

from wardflow.domain.errors import AlertNotFoundError, WardFlowError
from wardflow.domain.models import ALERT_SEVERITY, AlertLevel, OccupancyAlert, OccupancySnapshot
from wardflow.repository.data_repository import DataRepository
from wardflow.services.aggregation_service import classify_alert
from wardflow.services.allocation_service import utc_now
from wardflow.services.notification_service import (
    EventKind,
    Notifier,
    TransitionEvent,
    dispatch,
)
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


class AlertValidationError(WardFlowError):
    """Raised when an alert command is malformed."""


class AlertService:
    """Stores one open alert per (level, ward) until somebody acknowledges it."""

    def __init__(
        self,
        repository: DataRepository,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._notifier = notifier
        self._clock = clock or utc_now
        self._lock = Lock()

    def record_snapshot(self, snapshot: OccupancySnapshot) -> list[OccupancyAlert]:
        """Raise hospital-wide and per-ward alerts for every level above ``none``."""
        raised: list[OccupancyAlert] = []
        candidates = [(None, snapshot.alert_level, snapshot.hospital.occupancy_rate)]
        candidates.extend(
            (stats.ward_id, classify_alert(stats.occupancy_rate, self._settings), stats.occupancy_rate)
            for stats in snapshot.wards
        )
        for ward_id, level, rate in candidates:
            if level == AlertLevel.NONE:
                continue
            scope = f"ward {ward_id}" if ward_id else "hospital"
            alert = self.raise_alert(
                level,
                f"{scope} occupancy at {rate:.2f}%",
                ward_id=ward_id,
                occupancy_rate=rate,
                at=snapshot.timestamp,
            )
            if alert is not None:
                raised.append(alert)
        return raised

    def raise_alert(
        self,
        level: AlertLevel,
        message: str,
        *,
        ward_id: Optional[str] = None,
        occupancy_rate: Optional[float] = None,
        at: Optional[datetime] = None,
    ) -> Optional[OccupancyAlert]:
        """Store a new alert; returns None while an identical one is unacknowledged."""
        if level == AlertLevel.NONE:
            raise AlertValidationError("alert level must be above none")
        with self._lock:
            open_alerts = self._repository.list_alerts(level=level, ward_id=ward_id, acknowledged=False)
            if any(alert.ward_id == ward_id for alert in open_alerts):
                return None
            alert = OccupancyAlert(
                alert_id=f"ALR-{self._repository.count_alerts() + 1:06d}",
                level=level,
                message=message,
                created_at=at or self._clock(),
                ward_id=ward_id,
                occupancy_rate=occupancy_rate,
            )
            self._repository.save_alert(alert)
        logger.warning(
            "Alert raised | %s",
            format_fields(alert_id=alert.alert_id, level=level.value, ward=ward_id, rate=occupancy_rate),
        )
        return alert

    def get_alert(self, alert_id: str) -> OccupancyAlert:
        alert = self._repository.get_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"alert_id {alert_id} not found")
        return alert

    def list_alerts(
        self,
        level: Optional[AlertLevel] = None,
        ward_id: Optional[str] = None,
        acknowledged: Optional[bool] = None,
        limit: Optional[int] = 50,
    ) -> list[OccupancyAlert]:
        """Most severe first, newest first within a level."""
        alerts = self._repository.list_alerts(level=level, ward_id=ward_id, acknowledged=acknowledged)
        alerts.sort(key=lambda alert: (-ALERT_SEVERITY[alert.level], -alert.created_at.timestamp()))
        return alerts[:limit] if limit is not None else alerts

    def acknowledge(self, alert_id: str, acknowledged_by: str) -> OccupancyAlert:
        if not acknowledged_by.strip():
            raise AlertValidationError("acknowledged_by must be non-empty")
        now = self._clock()
        with self._lock:
            alert = self.get_alert(alert_id)
            if alert.acknowledged:
                return alert
            acknowledged = replace(
                alert, acknowledged=True, acknowledged_by=acknowledged_by, acknowledged_at=now
            )
            self._repository.save_alert(acknowledged)
        logger.info(
            "Alert acknowledged | %s", format_fields(alert_id=alert_id, by=acknowledged_by)
        )
        dispatch(
            self._notifier,
            TransitionEvent(
                kind=EventKind.ALERT_ACKNOWLEDGED,
                at=now,
                payload={"alert_id": alert_id, "level": alert.level.value},
            ),
        )
        return acknowledged

    def summary(self) -> dict[str, Any]:
        alerts = self._repository.list_alerts()
        open_alerts = [alert for alert in alerts if not alert.acknowledged]
        levels = [level for level in AlertLevel if level != AlertLevel.NONE]
        by_level = Counter(alert.level for alert in alerts)
        open_by_level = Counter(alert.level for alert in open_alerts)
        return {
            "total": len(alerts),
            "unacknowledged": len(open_alerts),
            "by_level": {level.value: by_level.get(level, 0) for level in levels},
            "unacknowledged_by_level": {level.value: open_by_level.get(level, 0) for level in levels},
        }
