from __future__ import annotations

import time
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from wardflow.domain.models import RequestStatus, UnitStatus
from wardflow.domain.registry import BedRegistry
from wardflow.repository.data_repository import DataRepository
from wardflow.services.aggregation_service import OccupancyAggregator
from wardflow.services.allocation_service import AllocationProtocolService
from wardflow.services.sampling_service import SamplingClock
from wardflow.utils.config import WardLayout, get_settings


START = datetime(2026, 3, 2, 22, 0, tzinfo=timezone.utc)


def _build_clock(tmp_path, **overrides):
    settings = replace(
        get_settings(),
        database_path=tmp_path / "sampling.db",
        ward_layout=(WardLayout("ICU", 2, "ICU Monitor"), WardLayout("General Ward", 2)),
        **overrides,
    )
    repository = DataRepository(settings)
    repository.initialize_database()
    registry = BedRegistry()
    allocation_service = AllocationProtocolService(
        registry=registry,
        repository=repository,
        settings=settings,
        clock=lambda: START,
    )
    allocation_service.bootstrap()
    aggregator = OccupancyAggregator(registry=registry, repository=repository, settings=settings)
    clock = SamplingClock(allocation_service=allocation_service, aggregator=aggregator, settings=settings)
    return clock, allocation_service, aggregator, repository


def test_tick_runs_expiry_before_snapshot(tmp_path):
    clock, service, _, _ = _build_clock(tmp_path)
    service.set_unit_status("BED-001", UnitStatus.OCCUPIED, occupant_ref="walk-in:1")
    service.discharge("BED-001")
    request = service.submit_request(ward_preference="General Ward")
    service.approve(request.request_id)

    result = clock.tick(START + timedelta(hours=3))

    assert [unit.unit_id for unit in result.released_units] == ["BED-001"]
    assert [item.request_id for item in result.expired_requests] == [request.request_id]
    assert result.snapshot.hospital.available == 4
    assert result.snapshot.hospital.cleaning == 0
    assert service.get_request(request.request_id).status == RequestStatus.CANCELLED


def test_reservation_expiry_can_be_disabled(tmp_path):
    clock, service, _, _ = _build_clock(tmp_path, reservation_auto_expire=False)
    request = service.submit_request(ward_preference="ICU")
    service.approve(request.request_id)

    result = clock.tick(START + timedelta(hours=5))

    assert result.expired_requests == ()
    assert result.snapshot.hospital.reserved == 1


def test_ticks_across_midnight_close_the_day(tmp_path):
    clock, _, aggregator, repository = _build_clock(tmp_path)

    clock.tick(START)
    clock.tick(START + timedelta(hours=1))
    clock.tick(START + timedelta(hours=2))

    records = repository.list_daily_records(since=date(2026, 3, 1))
    assert [item.record_date for item in records] == [date(2026, 3, 2)]
    assert len(records[0].hourly) == 2
    assert len(aggregator.current_day_snapshots()) == 1


def test_background_thread_starts_and_stops(tmp_path):
    clock, _, aggregator, _ = _build_clock(tmp_path, sampling_interval_seconds=3600)

    clock.start()
    deadline = time.monotonic() + 5
    while not aggregator.current_day_snapshots() and time.monotonic() < deadline:
        time.sleep(0.01)
    clock.stop()

    assert clock.running is False
    assert len(aggregator.current_day_snapshots()) == 1


def test_day_end_record_is_measured_before_dwell_expiry(tmp_path):
    clock, service, _, repository = _build_clock(tmp_path, cleaning_dwell_minutes=30)
    service.set_unit_status("BED-001", UnitStatus.OCCUPIED, occupant_ref="walk-in:1")
    service.discharge("BED-001")
    clock.tick(START)

    result = clock.tick(START + timedelta(hours=3))

    assert result.closed_record is not None
    assert result.closed_record.record_date == date(2026, 3, 2)
    assert result.closed_record.hospital.cleaning == 1
    assert [unit.unit_id for unit in result.released_units] == ["BED-001"]
    assert result.snapshot.hospital.cleaning == 0
    [record] = repository.list_daily_records(since=date(2026, 3, 1))
    assert record.ward("ICU").cleaning == 1
