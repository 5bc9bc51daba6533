"""Discharge schedule providers consumed by the forecast engine."""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Mapping, Protocol

from wardflow.domain.models import UnitStatus
from wardflow.domain.registry import BedRegistry


class DischargeScheduleProvider(Protocol):
    def scheduled_departures_by_ward(self, date_bucket: date) -> Mapping[str, int]:
        ...


class RegistryDischargeSchedule:
    """Counts occupied units whose expected departure falls on ``date_bucket``."""

    def __init__(self, registry: BedRegistry) -> None:
        self._registry = registry

    def scheduled_departures_by_ward(self, date_bucket: date) -> Mapping[str, int]:
        counts: Counter[str] = Counter()
        for unit in self._registry.units(status=UnitStatus.OCCUPIED):
            if unit.expected_departure is None:
                continue
            if unit.expected_departure.date() == date_bucket:
                counts[unit.ward_id] += 1
        return dict(counts)


class StaticDischargeSchedule:
    """Fixed per-ward counts, for callers that already hold the schedule."""

    def __init__(self, counts: Mapping[str, int]) -> None:
        self._counts = dict(counts)

    def scheduled_departures_by_ward(self, date_bucket: date) -> Mapping[str, int]:
        del date_bucket
        return dict(self._counts)
