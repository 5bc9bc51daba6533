from __future__ import annotations

from datetime import datetime, timezone

import pytest

from wardflow.domain.errors import (
    CapacityInvariantViolation,
    InvalidStateTransition,
    UnitNotFoundError,
    WardNotFoundError,
)
from wardflow.domain.models import UnitSpec, UnitStatus
from wardflow.domain.registry import BedRegistry


NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _specs(prefix: str, count: int, equipment_tag: str = "Standard") -> list[UnitSpec]:
    return [UnitSpec(unit_id=f"{prefix}-{index:02d}", equipment_tag=equipment_tag) for index in range(1, count + 1)]


def _build_registry() -> BedRegistry:
    registry = BedRegistry()
    registry.provision_ward("ICU", _specs("ICU", 3, "ICU Monitor"), at=NOW)
    registry.provision_ward("General Ward", _specs("GEN", 4), at=NOW)
    return registry


def _assert_parity(registry: BedRegistry) -> None:
    for ward in registry.wards():
        assert len(ward.unit_ids) == ward.capacity
        assert sum(registry.status_counts()[ward.ward_id].values()) == ward.capacity
        registry.verify_capacity(ward.ward_id)


def test_provisioned_wards_start_available_and_balanced() -> None:
    registry = _build_registry()

    assert registry.ward_ids() == ["General Ward", "ICU"]
    assert [unit.unit_id for unit in registry.units(ward_id="ICU")] == ["ICU-01", "ICU-02", "ICU-03"]
    assert registry.status_counts()["ICU"][UnitStatus.AVAILABLE] == 3
    _assert_parity(registry)


def test_index_follows_transitions() -> None:
    registry = _build_registry()

    registry.transition("ICU-02", UnitStatus.OCCUPIED, at=NOW, occupant_ref="patient:1")

    assert [unit.unit_id for unit in registry.units(ward_id="ICU", status=UnitStatus.OCCUPIED)] == ["ICU-02"]
    assert [unit.unit_id for unit in registry.units(status=UnitStatus.OCCUPIED)] == ["ICU-02"]
    assert "ICU-02" not in {unit.unit_id for unit in registry.units(status=UnitStatus.AVAILABLE)}
    _assert_parity(registry)


def test_holding_status_requires_occupant() -> None:
    registry = _build_registry()

    with pytest.raises(InvalidStateTransition):
        registry.transition("ICU-01", UnitStatus.RESERVED, at=NOW)

    assert registry.get_unit("ICU-01").status == UnitStatus.AVAILABLE


def test_releasing_a_unit_clears_occupant_and_departure() -> None:
    registry = _build_registry()
    departure = datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc)
    registry.transition(
        "GEN-01",
        UnitStatus.OCCUPIED,
        at=NOW,
        occupant_ref="patient:7",
        expected_departure=departure,
    )
    assert registry.get_unit("GEN-01").expected_departure == departure

    cleaned = registry.transition("GEN-01", UnitStatus.CLEANING, at=NOW)

    assert cleaned.occupant_ref is None
    assert cleaned.expected_departure is None


def test_illegal_edge_leaves_state_unchanged() -> None:
    registry = _build_registry()

    with pytest.raises(InvalidStateTransition):
        registry.transition("GEN-02", UnitStatus.CLEANING, at=NOW)

    assert registry.get_unit("GEN-02").status == UnitStatus.AVAILABLE


def test_unknown_identifiers_raise() -> None:
    registry = _build_registry()

    with pytest.raises(UnitNotFoundError):
        registry.get_unit("NOPE")
    with pytest.raises(WardNotFoundError):
        registry.get_ward("Maternity")


def test_atomic_section_rolls_back_every_write() -> None:
    registry = _build_registry()

    with pytest.raises(RuntimeError):
        with registry.atomic():
            registry.transition("ICU-01", UnitStatus.OCCUPIED, at=NOW, occupant_ref="patient:1")
            registry.transition("ICU-01", UnitStatus.CLEANING, at=NOW)
            raise RuntimeError("abort")

    assert registry.get_unit("ICU-01").status == UnitStatus.AVAILABLE
    assert registry.units(status=UnitStatus.CLEANING) == []
    _assert_parity(registry)


def test_provision_rejects_duplicates_and_empty_wards() -> None:
    registry = _build_registry()

    with pytest.raises(ValueError):
        registry.provision_ward("Maternity", [], at=NOW)
    with pytest.raises(ValueError):
        registry.provision_ward("Maternity", [UnitSpec("ICU-01")], at=NOW)
    with pytest.raises(ValueError):
        registry.provision_ward("ICU", [UnitSpec("ICU-99")], at=NOW)

    assert not registry.has_ward("Maternity")


def test_reconfigure_moves_available_unit_between_wards() -> None:
    registry = _build_registry()

    wards = registry.reconfigure(
        capacities={"ICU": 4, "General Ward": 3},
        moves={"GEN-04": "ICU"},
        at=NOW,
    )

    assert [ward.ward_id for ward in wards] == ["General Ward", "ICU"]
    assert registry.get_unit("GEN-04").ward_id == "ICU"
    assert registry.get_ward("ICU").capacity == 4
    _assert_parity(registry)


def test_reconfigure_adds_units_with_matching_capacity() -> None:
    registry = _build_registry()

    registry.reconfigure(
        capacities={"ICU": 4},
        new_units=[("ICU", UnitSpec("ICU-04", "Ventilator"))],
        at=NOW,
    )

    assert registry.get_unit("ICU-04").equipment_tag == "Ventilator"
    assert registry.get_unit("ICU-04").status == UnitStatus.AVAILABLE
    _assert_parity(registry)


def test_reconfigure_parity_failure_changes_nothing() -> None:
    registry = _build_registry()

    with pytest.raises(CapacityInvariantViolation):
        registry.reconfigure(capacities={"ICU": 4}, moves={"GEN-04": "ICU"}, at=NOW)

    assert registry.get_unit("GEN-04").ward_id == "General Ward"
    assert registry.get_ward("ICU").capacity == 3
    assert registry.get_ward("General Ward").capacity == 4
    _assert_parity(registry)


def test_reconfigure_refuses_to_move_occupied_unit() -> None:
    registry = _build_registry()
    registry.transition("GEN-01", UnitStatus.OCCUPIED, at=NOW, occupant_ref="patient:1")

    with pytest.raises(InvalidStateTransition):
        registry.reconfigure(
            capacities={"ICU": 4, "General Ward": 3},
            moves={"GEN-01": "ICU"},
            at=NOW,
        )

    assert registry.get_unit("GEN-01").ward_id == "General Ward"


def test_load_hydrates_empty_registry() -> None:
    source = _build_registry()
    source.transition("ICU-03", UnitStatus.MAINTENANCE, at=NOW)

    restored = BedRegistry()
    restored.load(source.wards(), source.units())

    assert restored.get_unit("ICU-03").status == UnitStatus.MAINTENANCE
    assert restored.status_counts() == source.status_counts()
    with pytest.raises(ValueError):
        restored.load(source.wards(), source.units())
