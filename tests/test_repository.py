from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from wardflow.domain.models import (
    AlertLevel,
    BedRequest,
    CleaningJob,
    CleaningJobStatus,
    OccupancySnapshot,
    RequestStatus,
    TransferRecord,
    TransferRequestStatus,
    Unit,
    UnitStatus,
    Ward,
    WardStats,
    WardTransferRequest,
)
from wardflow.repository.data_repository import DataRepository
from wardflow.utils.config import get_settings


NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _build_repository(tmp_path) -> DataRepository:
    settings = replace(get_settings(), database_path=tmp_path / "nested" / "repository.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    return repository


def _request(request_id: str, priority: int, created_offset: int) -> BedRequest:
    return BedRequest(
        request_id=request_id,
        requested_ward="ICU",
        equipment_tag=None,
        priority=priority,
        eta=NOW,
        status=RequestStatus.PENDING,
        created_at=NOW + timedelta(minutes=created_offset),
        patient_ref=f"patient:{request_id}",
    )


def test_initialize_is_idempotent_and_creates_parent_dir(tmp_path):
    repository = _build_repository(tmp_path)
    repository.initialize_database()

    assert repository.database_path.exists()
    assert repository.count_units() == 0
    assert repository.count_requests() == 0


def test_units_and_wards_round_trip(tmp_path):
    repository = _build_repository(tmp_path)
    departure = NOW + timedelta(days=1)
    repository.save_wards([Ward("ICU", 2, ("A", "B"))])
    repository.save_units(
        [
            Unit("A", "ICU", UnitStatus.OCCUPIED, NOW, "Ventilator", "patient:1", departure),
            Unit("B", "ICU", UnitStatus.AVAILABLE, NOW),
        ]
    )
    repository.save_units([Unit("B", "ICU", UnitStatus.MAINTENANCE, NOW + timedelta(hours=1))])

    [ward] = repository.list_wards()
    units = {unit.unit_id: unit for unit in repository.list_units()}
    assert ward == Ward("ICU", 2, ("A", "B"))
    assert units["A"].expected_departure == departure
    assert units["A"].equipment_tag == "Ventilator"
    assert units["B"].status == UnitStatus.MAINTENANCE
    assert repository.count_units() == 2


def test_requests_ordered_by_priority_then_age(tmp_path):
    repository = _build_repository(tmp_path)
    repository.save_request(_request("REQ-000001", 2, 0))
    repository.save_request(_request("REQ-000002", 5, 5))
    repository.save_request(_request("REQ-000003", 5, 1))
    repository.save_request(
        replace(_request("REQ-000001", 2, 0), status=RequestStatus.DENIED, denial_reason="full")
    )

    ordered = [item.request_id for item in repository.list_requests()]
    denied = repository.list_requests(RequestStatus.DENIED)

    assert ordered == ["REQ-000003", "REQ-000002", "REQ-000001"]
    assert [item.denial_reason for item in denied] == ["full"]
    assert repository.count_requests() == 3


def test_transfers_are_appended(tmp_path):
    repository = _build_repository(tmp_path)
    record = TransferRecord("TRF-000001", "patient:1", "A", "ICU", "C", "Cardiology", "step down", NOW)

    repository.save_transfer(record)

    assert repository.list_transfers() == [record]
    assert repository.count_transfers() == 1


def test_cleaning_jobs_upsert_and_open_lookup(tmp_path):
    repository = _build_repository(tmp_path)
    first = CleaningJob("CLN-000001", "BED-001", "ICU", CleaningJobStatus.PENDING, NOW)
    second = CleaningJob("CLN-000002", "BED-001", "ICU", CleaningJobStatus.PENDING, NOW + timedelta(hours=1))
    repository.save_cleaning_jobs([first])
    repository.save_cleaning_jobs([replace(first, status=CleaningJobStatus.COMPLETED, completed_at=NOW), second])

    assert repository.count_cleaning_jobs() == 2
    assert repository.find_open_cleaning_job("BED-001") == second
    assert repository.find_open_cleaning_job("BED-002") is None
    assert [job.job_id for job in repository.list_cleaning_jobs()] == ["CLN-000002", "CLN-000001"]
    assert repository.get_cleaning_job("CLN-000001").completed_at == NOW


def test_ward_transfer_request_filters(tmp_path):
    repository = _build_repository(tmp_path)
    base = WardTransferRequest(
        transfer_request_id="WTR-000001",
        unit_id="BED-003",
        occupant_ref="patient-1",
        current_ward="General Ward",
        target_ward="ICU",
        status=TransferRequestStatus.PENDING,
        requested_by="nurse-a",
        created_at=NOW,
    )
    repository.save_ward_transfer_request(base)
    repository.save_ward_transfer_request(
        replace(base, transfer_request_id="WTR-000002", unit_id="BED-004", created_at=NOW + timedelta(minutes=1))
    )
    repository.save_ward_transfer_request(replace(base, status=TransferRequestStatus.DENIED, denial_reason="no"))

    pending = repository.list_ward_transfer_requests(status=TransferRequestStatus.PENDING)
    assert [item.transfer_request_id for item in pending] == ["WTR-000002"]
    assert repository.list_ward_transfer_requests(unit_id="BED-003")[0].denial_reason == "no"
    assert len(repository.list_ward_transfer_requests(target_ward="ICU", limit=1)) == 1


def test_open_snapshots_are_grouped_by_day_and_deleted_on_fold(tmp_path):
    repository = _build_repository(tmp_path)
    stats = WardStats(None, 4, 2, 2, 0, 0, 0, 50.0)
    for offset in (0, 1, 25):
        at = NOW + timedelta(hours=offset)
        repository.save_snapshot(at.date(), OccupancySnapshot(at, stats, (), AlertLevel.NONE))

    assert [day.isoformat() for day, _ in repository.list_open_snapshots()] == [
        "2026-03-02",
        "2026-03-02",
        "2026-03-03",
    ]
    repository.delete_snapshots(NOW.date())
    [(day, snapshot)] = repository.list_open_snapshots()
    assert snapshot.timestamp == NOW + timedelta(hours=25)
    assert snapshot.hospital == stats
