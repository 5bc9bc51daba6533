from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from wardflow.domain.errors import AlertNotFoundError
from wardflow.domain.models import AlertLevel, OccupancySnapshot, WardStats
from wardflow.repository.data_repository import DataRepository
from wardflow.services.alert_service import AlertService, AlertValidationError
from wardflow.services.notification_service import EventKind, InMemoryNotifier
from wardflow.utils.config import get_settings


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _build_service(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path / "alerts.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    notifier = InMemoryNotifier()
    service = AlertService(repository, settings=settings, notifier=notifier, clock=lambda: NOW)
    return service, repository, notifier


def _stats(ward_id, occupied: int, total: int = 10) -> WardStats:
    rate = round(100.0 * occupied / total, 2)
    return WardStats(ward_id, total, total - occupied, occupied, 0, 0, 0, rate)


def _snapshot(at: datetime, hospital_level: AlertLevel, *wards: WardStats) -> OccupancySnapshot:
    occupied = sum(item.occupied for item in wards)
    total = sum(item.total for item in wards)
    return OccupancySnapshot(
        timestamp=at,
        hospital=_stats(None, occupied, total),
        wards=wards,
        alert_level=hospital_level,
    )


def test_snapshot_raises_hospital_and_ward_alerts(tmp_path):
    service, _, _ = _build_service(tmp_path)
    snapshot = _snapshot(NOW, AlertLevel.WARNING, _stats("ICU", 10), _stats("General Ward", 7))

    raised = service.record_snapshot(snapshot)

    assert [(alert.level, alert.ward_id) for alert in raised] == [
        (AlertLevel.WARNING, None),
        (AlertLevel.EMERGENCY, "ICU"),
    ]
    assert raised[1].occupancy_rate == 100.0
    assert raised[0].alert_id == "ALR-000001"


def test_open_alert_is_not_repeated_until_acknowledged(tmp_path):
    service, repository, notifier = _build_service(tmp_path)
    snapshot = _snapshot(NOW, AlertLevel.NONE, _stats("ICU", 9), _stats("General Ward", 1))

    [first] = service.record_snapshot(snapshot)
    assert service.record_snapshot(replace(snapshot, timestamp=NOW + timedelta(hours=1))) == []

    acknowledged = service.acknowledge(first.alert_id, "charge-nurse")
    assert acknowledged.acknowledged_by == "charge-nurse"
    assert acknowledged.acknowledged_at == NOW
    [second] = service.record_snapshot(replace(snapshot, timestamp=NOW + timedelta(hours=2)))

    assert second.alert_id == "ALR-000002"
    assert repository.count_alerts() == 2
    assert [event.kind for event in notifier.recent()] == [EventKind.ALERT_ACKNOWLEDGED]


def test_list_orders_by_severity_then_recency(tmp_path):
    service, _, _ = _build_service(tmp_path)
    service.raise_alert(AlertLevel.WARNING, "ICU warm", ward_id="ICU", at=NOW)
    service.raise_alert(AlertLevel.EMERGENCY, "hospital full", at=NOW)
    service.raise_alert(AlertLevel.WARNING, "General busy", ward_id="General Ward", at=NOW + timedelta(hours=1))

    assert [alert.message for alert in service.list_alerts()] == [
        "hospital full",
        "General busy",
        "ICU warm",
    ]
    assert [alert.message for alert in service.list_alerts(ward_id="ICU")] == ["ICU warm"]
    assert len(service.list_alerts(limit=2)) == 2


def test_summary_counts_open_alerts_by_level(tmp_path):
    service, _, _ = _build_service(tmp_path)
    critical = service.raise_alert(AlertLevel.CRITICAL, "ICU critical", ward_id="ICU")
    service.raise_alert(AlertLevel.WARNING, "hospital warm")
    service.acknowledge(critical.alert_id, "supervisor")

    summary = service.summary()

    assert summary["total"] == 2
    assert summary["unacknowledged"] == 1
    assert summary["by_level"] == {"warning": 1, "critical": 1, "emergency": 0}
    assert summary["unacknowledged_by_level"] == {"warning": 1, "critical": 0, "emergency": 0}
    assert service.list_alerts(acknowledged=False)[0].message == "hospital warm"


def test_validation_and_lookup_errors(tmp_path):
    service, _, _ = _build_service(tmp_path)

    with pytest.raises(AlertValidationError):
        service.raise_alert(AlertLevel.NONE, "nothing")
    with pytest.raises(AlertNotFoundError):
        service.acknowledge("ALR-404", "supervisor")
    alert = service.raise_alert(AlertLevel.WARNING, "warm")
    with pytest.raises(AlertValidationError):
        service.acknowledge(alert.alert_id, "")
