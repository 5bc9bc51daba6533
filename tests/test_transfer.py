from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from wardflow.domain.errors import InvalidStateTransition, NoCapacity, WardNotFoundError
from wardflow.domain.models import RequestStatus, UnitStatus
from wardflow.domain.registry import BedRegistry
from wardflow.repository.data_repository import DataRepository
from wardflow.services.allocation_service import AllocationProtocolService
from wardflow.utils.config import WardLayout, get_settings


NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _build_service(tmp_path):
    settings = replace(
        get_settings(),
        database_path=tmp_path / "transfer.db",
        ward_layout=(
            WardLayout("Emergency", 2, "Standard"),
            WardLayout("Cardiology", 2, "Cardiac Monitor"),
        ),
    )
    repository = DataRepository(settings)
    repository.initialize_database()
    service = AllocationProtocolService(
        registry=BedRegistry(),
        repository=repository,
        settings=settings,
        clock=lambda: NOW,
    )
    service.bootstrap()
    return service, repository


def _admit(service: AllocationProtocolService, ward: str) -> tuple[str, str]:
    request = service.submit_request(ward_preference=ward, eta=NOW)
    approved = service.approve(request.request_id)
    return request.request_id, approved.assigned_unit_id


def test_transfer_moves_occupant_and_cleans_source(tmp_path):
    service, repository = _build_service(tmp_path)
    request_id, source_id = _admit(service, "Emergency")
    occupant = service.registry.get_unit(source_id).occupant_ref

    result = service.transfer(source_id, "Cardiology", "needs telemetry")

    assert result.released_unit.unit_id == source_id
    assert result.released_unit.status == UnitStatus.CLEANING
    assert result.admitted_unit.ward_id == "Cardiology"
    assert result.admitted_unit.status == UnitStatus.OCCUPIED
    assert result.admitted_unit.occupant_ref == occupant
    assert result.record.transfer_id == "TRF-000001"
    assert result.record.reason == "needs telemetry"
    assert service.get_request(request_id).assigned_unit_id == result.admitted_unit.unit_id
    assert [item.transfer_id for item in repository.list_transfers()] == ["TRF-000001"]


def test_transfer_keeps_expected_departure(tmp_path):
    service, _ = _build_service(tmp_path)
    departure = NOW + timedelta(days=2)
    service.set_unit_status(
        "BED-001",
        UnitStatus.OCCUPIED,
        occupant_ref="walk-in:1",
        expected_departure=departure,
    )

    result = service.transfer("BED-001", "Cardiology")

    assert result.admitted_unit.expected_departure == departure
    assert result.released_unit.expected_departure is None


def test_transfer_without_capacity_leaves_source_occupied(tmp_path):
    service, repository = _build_service(tmp_path)
    _, source_id = _admit(service, "Emergency")
    service.set_unit_status("BED-003", UnitStatus.OCCUPIED, occupant_ref="walk-in:3")
    service.set_unit_status("BED-004", UnitStatus.MAINTENANCE)

    with pytest.raises(NoCapacity) as exc_info:
        service.transfer(source_id, "Cardiology")

    assert exc_info.value.ward_id == "Cardiology"
    assert service.registry.get_unit(source_id).status == UnitStatus.OCCUPIED
    assert repository.count_transfers() == 0


def test_transfer_requires_occupied_source(tmp_path):
    service, _ = _build_service(tmp_path)

    with pytest.raises(InvalidStateTransition):
        service.transfer("BED-001", "Cardiology")

    service.set_unit_status("BED-001", UnitStatus.OCCUPIED, occupant_ref="walk-in:1")
    with pytest.raises(WardNotFoundError):
        service.transfer("BED-001", "Maternity")
    assert service.registry.get_unit("BED-001").status == UnitStatus.OCCUPIED


def test_discharge_after_transfer_fulfils_request(tmp_path):
    service, _ = _build_service(tmp_path)
    request_id, source_id = _admit(service, "Emergency")
    destination = service.transfer(source_id, "Cardiology").admitted_unit.unit_id

    service.discharge(destination)

    assert service.get_request(request_id).status == RequestStatus.FULFILLED
