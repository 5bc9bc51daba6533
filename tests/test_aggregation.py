from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from wardflow.domain.models import AlertLevel, DailyRecord, UnitSpec, UnitStatus
from wardflow.domain.registry import BedRegistry
from wardflow.repository.data_repository import DataRepository
from wardflow.services.aggregation_service import (
    AggregationValidationError,
    OccupancyAggregator,
    classify_alert,
    occupancy_rate,
)
from wardflow.services.notification_service import EventKind, InMemoryNotifier
from wardflow.utils.config import get_settings


DAY_ONE = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _build_registry(icu_occupied: int = 1, general_occupied: int = 2) -> BedRegistry:
    registry = BedRegistry()
    registry.provision_ward("ICU", [UnitSpec(f"ICU-{index}") for index in range(1, 4)], at=DAY_ONE)
    registry.provision_ward("General Ward", [UnitSpec(f"GEN-{index}") for index in range(1, 5)], at=DAY_ONE)
    for index in range(1, icu_occupied + 1):
        registry.transition(f"ICU-{index}", UnitStatus.OCCUPIED, at=DAY_ONE, occupant_ref=f"p:{index}")
    for index in range(1, general_occupied + 1):
        registry.transition(f"GEN-{index}", UnitStatus.OCCUPIED, at=DAY_ONE, occupant_ref=f"g:{index}")
    return registry


def _build_aggregator(tmp_path, registry: BedRegistry, notifier=None):
    settings = replace(get_settings(), database_path=tmp_path / "aggregation.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    aggregator = OccupancyAggregator(
        registry=registry,
        repository=repository,
        settings=settings,
        notifier=notifier,
        clock=lambda: DAY_ONE,
    )
    return aggregator, repository


def test_occupancy_rate_rounds_to_two_decimals():
    assert occupancy_rate(1, 3) == 33.33
    assert occupancy_rate(2, 3) == 66.67
    assert occupancy_rate(0, 0) == 0.0
    assert occupancy_rate(5, 5) == 100.0


def test_snapshot_counts_per_ward_and_hospital(tmp_path):
    registry = _build_registry()
    registry.transition("GEN-4", UnitStatus.MAINTENANCE, at=DAY_ONE)
    aggregator, _ = _build_aggregator(tmp_path, registry)

    snapshot = aggregator.get_snapshot()

    icu = snapshot.ward("ICU")
    general = snapshot.ward("General Ward")
    assert (icu.total, icu.occupied, icu.available, icu.occupancy_rate) == (3, 1, 2, 33.33)
    assert (general.occupied, general.maintenance, general.available) == (2, 1, 1)
    assert snapshot.hospital.ward_id is None
    assert snapshot.hospital.total == 7
    assert snapshot.hospital.occupancy_rate == round(100 * 3 / 7, 2)
    assert snapshot.alert_level == AlertLevel.NONE


def test_alert_classification_thresholds():
    settings = get_settings()

    assert classify_alert(79.99, settings) == AlertLevel.NONE
    assert classify_alert(80.0, settings) == AlertLevel.WARNING
    assert classify_alert(90.0, settings) == AlertLevel.CRITICAL
    assert classify_alert(95.0, settings) == AlertLevel.EMERGENCY


def test_capture_sends_occupancy_alert(tmp_path):
    notifier = InMemoryNotifier()
    aggregator, _ = _build_aggregator(
        tmp_path,
        _build_registry(icu_occupied=3, general_occupied=4),
        notifier=notifier,
    )

    snapshot = aggregator.capture(DAY_ONE)

    assert snapshot.alert_level == AlertLevel.EMERGENCY
    events = notifier.recent()
    assert [event.kind for event in events] == [EventKind.OCCUPANCY_ALERT]
    assert events[0].payload["level"] == "emergency"


def test_first_capture_of_new_day_folds_previous_day(tmp_path):
    registry = _build_registry()
    aggregator, repository = _build_aggregator(tmp_path, registry)
    aggregator.capture(DAY_ONE)
    aggregator.capture(DAY_ONE + timedelta(hours=1))
    registry.transition("ICU-2", UnitStatus.OCCUPIED, at=DAY_ONE, occupant_ref="p:2")

    next_day = datetime(2026, 3, 3, 0, 0, tzinfo=timezone.utc)
    aggregator.capture(next_day)

    records = repository.list_daily_records(since=date(2026, 3, 1))
    assert len(records) == 1
    record = records[0]
    assert record.record_date == date(2026, 3, 2)
    assert len(record.hourly) == 2
    assert record.ward("ICU").occupied == 2
    assert record.hourly[0].ward("ICU").occupied == 1
    assert record.peak_hour is False
    assert [item.timestamp for item in aggregator.current_day_snapshots()] == [next_day]


def test_peak_hour_flag_uses_day_end_rate(tmp_path):
    registry = _build_registry(icu_occupied=3, general_occupied=3)
    aggregator, _ = _build_aggregator(tmp_path, registry)
    aggregator.capture(DAY_ONE)

    record = aggregator.close_day(DAY_ONE + timedelta(hours=15))

    assert record is not None
    assert record.hospital.occupancy_rate == round(600 / 7, 2)
    assert record.peak_hour is True
    assert aggregator.close_day(DAY_ONE) is None


def test_daily_record_is_not_overwritten(tmp_path):
    aggregator, repository = _build_aggregator(tmp_path, _build_registry())
    snapshot = aggregator.compute_snapshot(DAY_ONE)
    original = DailyRecord(
        record_date=date(2026, 3, 2),
        timestamp=DAY_ONE,
        hospital=snapshot.hospital,
        wards=snapshot.wards,
    )
    repository.save_daily_record(original)
    repository.save_daily_record(replace(original, peak_hour=True))

    assert repository.count_daily_records() == 1
    assert repository.list_daily_records(since=date(2026, 3, 2))[0].peak_hour is False


def test_history_windows(tmp_path):
    aggregator, repository = _build_aggregator(tmp_path, _build_registry())
    snapshot = aggregator.compute_snapshot(DAY_ONE)
    today = date(2026, 3, 31)
    for offset in (0, 3, 10, 40):
        day = today - timedelta(days=offset)
        repository.save_daily_record(
            DailyRecord(
                record_date=day,
                timestamp=datetime.combine(day, datetime.min.time(), tzinfo=timezone.utc),
                hospital=snapshot.hospital,
                wards=snapshot.wards,
            )
        )

    assert [item.record_date for item in aggregator.get_history("today", today=today)] == [today]
    assert len(aggregator.get_history("7d", today=today)) == 2
    assert len(aggregator.get_history("30d", today=today)) == 3
    assert len(aggregator.get_history(45, today=today)) == 4
    assert [item.record_date for item in aggregator.get_history("7d", today=today)] == [
        today - timedelta(days=3),
        today,
    ]
    with pytest.raises(AggregationValidationError):
        aggregator.get_history("fortnight", today=today)
    with pytest.raises(AggregationValidationError):
        aggregator.get_history(-1, today=today)


def test_open_day_survives_restart_and_folds_once(tmp_path):
    registry = _build_registry()
    aggregator, repository = _build_aggregator(tmp_path, registry)
    midnight = datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc)
    for hour in range(22):
        aggregator.capture(midnight + timedelta(hours=hour))

    restarted = OccupancyAggregator(
        registry=registry,
        repository=repository,
        settings=replace(get_settings(), database_path=tmp_path / "aggregation.db"),
    )
    assert restarted.restore() == date(2026, 3, 2)
    assert len(restarted.current_day_snapshots()) == 22
    restarted.capture(datetime(2026, 3, 3, 0, 5, tzinfo=timezone.utc))

    records = repository.list_daily_records(since=date(2026, 3, 1))
    assert [item.record_date for item in records] == [date(2026, 3, 2)]
    assert len(records[0].hourly) == 22
    assert [day for day, _ in repository.list_open_snapshots()] == [date(2026, 3, 3)]


def test_restore_folds_days_left_behind_by_a_long_outage(tmp_path):
    registry = _build_registry()
    aggregator, repository = _build_aggregator(tmp_path, registry)
    aggregator.capture(DAY_ONE)
    snapshot = aggregator.compute_snapshot(DAY_ONE + timedelta(days=1))
    repository.save_snapshot(date(2026, 3, 3), snapshot)

    restarted = OccupancyAggregator(registry=registry, repository=repository, settings=get_settings())

    assert restarted.restore() == date(2026, 3, 3)
    [record] = repository.list_daily_records(since=date(2026, 3, 1))
    assert record.record_date == date(2026, 3, 2)
    assert len(record.hourly) == 1


def test_today_window_includes_the_unfinished_day(tmp_path):
    aggregator, repository = _build_aggregator(tmp_path, _build_registry())
    snapshot = aggregator.compute_snapshot(DAY_ONE)
    repository.save_daily_record(
        DailyRecord(
            record_date=date(2026, 3, 1),
            timestamp=DAY_ONE - timedelta(days=1),
            hospital=snapshot.hospital,
            wards=snapshot.wards,
        )
    )
    aggregator.capture(DAY_ONE)
    aggregator.capture(DAY_ONE + timedelta(hours=1))

    [today] = aggregator.get_history("today", today=date(2026, 3, 2))

    assert today.record_date == date(2026, 3, 2)
    assert len(today.hourly) == 2
    assert today.hospital == snapshot.hospital
    assert repository.count_daily_records() == 1
    assert [item.record_date for item in aggregator.get_history("7d", today=date(2026, 3, 2))] == [
        date(2026, 3, 1),
        date(2026, 3, 2),
    ]
