"""Authoritative in-memory bed registry with a (ward, status) index.

All reads and writes go through one re-entrant lock. ``atomic()`` opens a
journaled section: every unit or ward replaced inside it is recorded, and the
previous values are restored if the section exits with an exception, so a
composite operation such as a transfer never leaves half of its effect behind.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from threading import RLock
from typing import Iterable, Iterator, Mapping, Optional, Sequence

from wardflow.domain.constraints import ensure_unit_transition
from wardflow.domain.errors import (
    CapacityInvariantViolation,
    InvalidStateTransition,
    UnitNotFoundError,
    WardNotFoundError,
)
from wardflow.domain.models import HOLDING_STATUSES, Unit, UnitSpec, UnitStatus, Ward


class BedRegistry:
    """Holds every unit, its ward membership and its status."""

    def __init__(self) -> None:
        self._units: dict[str, Unit] = {}
        self._wards: dict[str, Ward] = {}
        self._index: dict[tuple[str, UnitStatus], set[str]] = defaultdict(set)
        self._lock = RLock()
        self._depth = 0
        self._unit_journal: dict[str, Optional[Unit]] = {}
        self._ward_journal: dict[str, Optional[Ward]] = {}

    @contextmanager
    def atomic(self) -> Iterator["BedRegistry"]:
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                if self._depth == 1:
                    self._rollback()
                raise
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._unit_journal.clear()
                    self._ward_journal.clear()

    def journaled_changes(self) -> list[tuple[Optional[Unit], Unit]]:
        """(previous, current) pairs for units replaced in the open atomic section."""
        with self._lock:
            return [
                (previous, self._units[unit_id])
                for unit_id, previous in sorted(self._unit_journal.items())
                if unit_id in self._units and self._units[unit_id] != previous
            ]

    def _rollback(self) -> None:
        for unit_id, previous in self._unit_journal.items():
            current = self._units.get(unit_id)
            if current is not None:
                self._index[(current.ward_id, current.status)].discard(unit_id)
            if previous is None:
                self._units.pop(unit_id, None)
            else:
                self._units[unit_id] = previous
                self._index[(previous.ward_id, previous.status)].add(unit_id)
        for ward_id, previous_ward in self._ward_journal.items():
            if previous_ward is None:
                self._wards.pop(ward_id, None)
            else:
                self._wards[ward_id] = previous_ward

    def _put_unit(self, unit: Unit) -> None:
        current = self._units.get(unit.unit_id)
        if self._depth and unit.unit_id not in self._unit_journal:
            self._unit_journal[unit.unit_id] = current
        if current is not None:
            self._index[(current.ward_id, current.status)].discard(unit.unit_id)
        self._units[unit.unit_id] = unit
        self._index[(unit.ward_id, unit.status)].add(unit.unit_id)

    def _put_ward(self, ward: Ward) -> None:
        if self._depth and ward.ward_id not in self._ward_journal:
            self._ward_journal[ward.ward_id] = self._wards.get(ward.ward_id)
        self._wards[ward.ward_id] = ward

    # --- reads ---

    def get_unit(self, unit_id: str) -> Unit:
        with self._lock:
            unit = self._units.get(unit_id)
        if unit is None:
            raise UnitNotFoundError(f"unit_id {unit_id} not found")
        return unit

    def get_ward(self, ward_id: str) -> Ward:
        with self._lock:
            ward = self._wards.get(ward_id)
        if ward is None:
            raise WardNotFoundError(f"ward_id {ward_id} not found")
        return ward

    def has_ward(self, ward_id: str) -> bool:
        with self._lock:
            return ward_id in self._wards

    def ward_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._wards)

    def wards(self) -> list[Ward]:
        with self._lock:
            return [self._wards[ward_id] for ward_id in sorted(self._wards)]

    def units(
        self,
        *,
        ward_id: Optional[str] = None,
        status: Optional[UnitStatus] = None,
    ) -> list[Unit]:
        """Return units ordered by id, optionally filtered through the index."""
        with self._lock:
            if ward_id is None and status is None:
                unit_ids: Iterable[str] = self._units
            elif ward_id is not None and status is not None:
                unit_ids = self._index.get((ward_id, status), set())
            elif ward_id is not None:
                unit_ids = self.get_ward(ward_id).unit_ids
            else:
                unit_ids = [
                    unit_id
                    for (_, indexed_status), members in self._index.items()
                    if indexed_status == status
                    for unit_id in members
                ]
            return [self._units[unit_id] for unit_id in sorted(unit_ids)]

    def status_counts(self) -> dict[str, Counter[UnitStatus]]:
        """Per-ward status counts read from the index in one locked pass."""
        with self._lock:
            counts: dict[str, Counter[UnitStatus]] = {}
            for ward_id in sorted(self._wards):
                counts[ward_id] = Counter(
                    {
                        status: len(self._index.get((ward_id, status), ()))
                        for status in UnitStatus
                    }
                )
            return counts

    def verify_capacity(self, ward_id: str) -> None:
        with self._lock:
            ward = self.get_ward(ward_id)
            indexed = sum(
                len(self._index.get((ward_id, status), ())) for status in UnitStatus
            )
            if indexed != ward.capacity or len(ward.unit_ids) != ward.capacity:
                raise CapacityInvariantViolation(ward_id, ward.capacity, indexed)

    # --- writes ---

    def transition(
        self,
        unit_id: str,
        target: UnitStatus,
        *,
        at: datetime,
        occupant_ref: Optional[str] = None,
        expected_departure: Optional[datetime] = None,
    ) -> Unit:
        """Move one unit along a legal edge, keeping the occupant invariant."""
        with self.atomic():
            current = self.get_unit(unit_id)
            ensure_unit_transition(unit_id, current.status, target)
            self.verify_capacity(current.ward_id)

            if target in HOLDING_STATUSES:
                occupant = occupant_ref or current.occupant_ref
                if not occupant:
                    raise InvalidStateTransition(
                        f"unit {unit_id}",
                        current.status.value,
                        target.value,
                        "an occupant reference is required",
                    )
                departure = expected_departure or current.expected_departure
            else:
                occupant = None
                departure = None

            updated = replace(
                current,
                status=target,
                status_changed_at=at,
                occupant_ref=occupant,
                expected_departure=departure,
            )
            self._put_unit(updated)
            return updated

    def provision_ward(
        self,
        ward_id: str,
        specs: Sequence[UnitSpec],
        *,
        at: datetime,
    ) -> Ward:
        """Create a ward whose capacity is exactly its provisioned unit count."""
        if not specs:
            raise ValueError("a ward must be provisioned with at least one unit")
        with self.atomic():
            if ward_id in self._wards:
                raise ValueError(f"ward_id {ward_id} already exists")
            unit_ids = [spec.unit_id for spec in specs]
            duplicates = {unit_id for unit_id in unit_ids if unit_id in self._units}
            if duplicates or len(set(unit_ids)) != len(unit_ids):
                raise ValueError(f"duplicate unit ids: {sorted(duplicates) or unit_ids}")

            ward = Ward(ward_id=ward_id, capacity=len(specs), unit_ids=tuple(sorted(unit_ids)))
            self._put_ward(ward)
            for spec in specs:
                self._put_unit(
                    Unit(
                        unit_id=spec.unit_id,
                        ward_id=ward_id,
                        status=UnitStatus.AVAILABLE,
                        status_changed_at=at,
                        equipment_tag=spec.equipment_tag,
                    )
                )
            self.verify_capacity(ward_id)
            return ward

    def reconfigure(
        self,
        *,
        capacities: Mapping[str, int],
        moves: Optional[Mapping[str, str]] = None,
        new_units: Sequence[tuple[str, UnitSpec]] = (),
        at: datetime,
    ) -> list[Ward]:
        """Bulk membership change validated against declared capacities.

        ``moves`` maps unit ids to their destination ward and ``new_units``
        pairs a ward id with a unit to create there. Every ward touched by the
        operation must end with exactly its declared capacity; otherwise
        nothing is committed.
        """
        moves = dict(moves or {})
        with self.atomic():
            membership = {ward_id: set(ward.unit_ids) for ward_id, ward in self._wards.items()}
            declared = {ward_id: ward.capacity for ward_id, ward in self._wards.items()}
            touched: set[str] = set(capacities)

            for ward_id, capacity in capacities.items():
                if capacity <= 0:
                    raise ValueError(f"capacity for {ward_id} must be > 0")
                declared[ward_id] = capacity
                membership.setdefault(ward_id, set())

            for unit_id, destination in moves.items():
                unit = self.get_unit(unit_id)
                if destination not in membership:
                    raise WardNotFoundError(f"ward_id {destination} not found")
                if unit.status not in (UnitStatus.AVAILABLE, UnitStatus.MAINTENANCE):
                    raise InvalidStateTransition(
                        f"unit {unit_id}",
                        unit.status.value,
                        f"move to {destination}",
                        "only available or maintenance units can change ward",
                    )
                membership[unit.ward_id].discard(unit_id)
                membership[destination].add(unit_id)
                touched.update({unit.ward_id, destination})

            for ward_id, spec in new_units:
                if ward_id not in membership:
                    raise WardNotFoundError(f"ward_id {ward_id} not found")
                if spec.unit_id in self._units:
                    raise ValueError(f"unit_id {spec.unit_id} already exists")
                membership[ward_id].add(spec.unit_id)
                touched.add(ward_id)

            for ward_id in sorted(touched):
                if len(membership[ward_id]) != declared[ward_id]:
                    raise CapacityInvariantViolation(
                        ward_id, declared[ward_id], len(membership[ward_id])
                    )

            for ward_id in sorted(touched):
                self._put_ward(
                    Ward(
                        ward_id=ward_id,
                        capacity=declared[ward_id],
                        unit_ids=tuple(sorted(membership[ward_id])),
                    )
                )
            for unit_id, destination in moves.items():
                self._put_unit(replace(self._units[unit_id], ward_id=destination, status_changed_at=at))
            for ward_id, spec in new_units:
                self._put_unit(
                    Unit(
                        unit_id=spec.unit_id,
                        ward_id=ward_id,
                        status=UnitStatus.AVAILABLE,
                        status_changed_at=at,
                        equipment_tag=spec.equipment_tag,
                    )
                )
            for ward_id in sorted(touched):
                self.verify_capacity(ward_id)
            return [self._wards[ward_id] for ward_id in sorted(touched)]

    def load(self, wards: Iterable[Ward], units: Iterable[Unit]) -> None:
        """Hydrate an empty registry from persisted state."""
        with self.atomic():
            if self._wards or self._units:
                raise ValueError("registry is already populated")
            for ward in wards:
                self._put_ward(ward)
            for unit in units:
                if unit.ward_id not in self._wards:
                    raise WardNotFoundError(f"ward_id {unit.ward_id} not found")
                self._put_unit(unit)
            for ward_id in list(self._wards):
                self.verify_capacity(ward_id)
