"""Domain models for bed lifecycle, occupancy aggregation and capacity forecasting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    CLEANING = "cleaning"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


HOLDING_STATUSES = frozenset({UnitStatus.OCCUPIED, UnitStatus.RESERVED})


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


TERMINAL_REQUEST_STATUSES = frozenset(
    {RequestStatus.DENIED, RequestStatus.FULFILLED, RequestStatus.CANCELLED}
)


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class SuggestionTier(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    OPPORTUNITY = "opportunity"
    INFO = "info"


class AlertLevel(str, Enum):
    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class MatchLevel(str, Enum):
    PERFECT = "perfect"
    EQUIPMENT_MATCH = "equipment_match"
    WARD_MATCH = "ward_match"
    OTHER = "other"


@dataclass(frozen=True)
class UnitSpec:
    """Provisioning input for a new unit."""

    unit_id: str
    equipment_tag: Optional[str] = None


@dataclass(frozen=True)
class Unit:
    unit_id: str
    ward_id: str
    status: UnitStatus
    status_changed_at: datetime
    equipment_tag: Optional[str] = None
    occupant_ref: Optional[str] = None
    expected_departure: Optional[datetime] = None


@dataclass(frozen=True)
class Ward:
    ward_id: str
    capacity: int
    unit_ids: tuple[str, ...]


@dataclass(frozen=True)
class BedRequest:
    request_id: str
    requested_ward: Optional[str]
    equipment_tag: Optional[str]
    priority: int
    eta: datetime
    status: RequestStatus
    created_at: datetime
    patient_ref: str
    assigned_unit_id: Optional[str] = None
    reservation_expires_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES


@dataclass(frozen=True)
class TransferRecord:
    transfer_id: str
    occupant_ref: str
    source_unit_id: str
    source_ward: str
    destination_unit_id: str
    destination_ward: str
    reason: str
    transferred_at: datetime


@dataclass(frozen=True)
class TransferResult:
    released_unit: Unit
    admitted_unit: Unit
    record: TransferRecord


@dataclass(frozen=True)
class UnitRecommendation:
    unit: Unit
    match_level: MatchLevel


@dataclass(frozen=True)
class WardStats:
    """Status counts for one ward, or hospital-wide when ``ward_id`` is None."""

    ward_id: Optional[str]
    total: int
    available: int
    occupied: int
    cleaning: int
    reserved: int
    maintenance: int
    occupancy_rate: float

    def to_dict(self) -> dict[str, object]:
        return {
            "ward_id": self.ward_id,
            "total": self.total,
            "available": self.available,
            "occupied": self.occupied,
            "cleaning": self.cleaning,
            "reserved": self.reserved,
            "maintenance": self.maintenance,
            "occupancy_rate": self.occupancy_rate,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "WardStats":
        return cls(
            ward_id=payload.get("ward_id"),  # type: ignore[arg-type]
            total=int(payload["total"]),  # type: ignore[arg-type]
            available=int(payload["available"]),  # type: ignore[arg-type]
            occupied=int(payload["occupied"]),  # type: ignore[arg-type]
            cleaning=int(payload["cleaning"]),  # type: ignore[arg-type]
            reserved=int(payload["reserved"]),  # type: ignore[arg-type]
            maintenance=int(payload["maintenance"]),  # type: ignore[arg-type]
            occupancy_rate=float(payload["occupancy_rate"]),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class OccupancySnapshot:
    timestamp: datetime
    hospital: WardStats
    wards: tuple[WardStats, ...]
    alert_level: AlertLevel = AlertLevel.NONE

    def ward(self, ward_id: str) -> Optional[WardStats]:
        for stats in self.wards:
            if stats.ward_id == ward_id:
                return stats
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "hospital": self.hospital.to_dict(),
            "wards": [stats.to_dict() for stats in self.wards],
            "alert_level": self.alert_level.value,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "OccupancySnapshot":
        return cls(
            timestamp=datetime.fromisoformat(str(payload["timestamp"])),
            hospital=WardStats.from_dict(payload["hospital"]),  # type: ignore[arg-type]
            wards=tuple(
                WardStats.from_dict(item) for item in payload["wards"]  # type: ignore[union-attr]
            ),
            alert_level=AlertLevel(payload.get("alert_level", AlertLevel.NONE.value)),
        )


@dataclass(frozen=True)
class DailyRecord:
    """Day-end registry measurement plus the day's hourly snapshots."""

    record_date: date
    timestamp: datetime
    hospital: WardStats
    wards: tuple[WardStats, ...]
    hourly: tuple[OccupancySnapshot, ...] = field(default_factory=tuple)
    peak_hour: bool = False

    def ward(self, ward_id: str) -> Optional[WardStats]:
        for stats in self.wards:
            if stats.ward_id == ward_id:
                return stats
        return None


@dataclass(frozen=True)
class WardForecast:
    ward_id: str
    current_rate: float
    projected_rate: float
    trend: Trend
    scheduled_discharges: int
    discharge_adjustment: float
    sample_count: int


@dataclass(frozen=True)
class Suggestion:
    tier: SuggestionTier
    rationale: str
    target_ward: Optional[str] = None
    source_ward: Optional[str] = None
    destination_wards: tuple[str, ...] = ()

    def references(self, ward_id: str) -> bool:
        return (
            self.target_ward == ward_id
            or self.source_ward == ward_id
            or ward_id in self.destination_wards
        )


class CleaningJobStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class CleaningJob:
    """Housekeeping task opened whenever a unit enters ``cleaning``."""

    job_id: str
    unit_id: str
    ward_id: str
    status: CleaningJobStatus
    created_at: datetime
    assigned_to: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TransferRequestStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DENIED = "denied"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class WardTransferRequest:
    transfer_request_id: str
    unit_id: str
    occupant_ref: str
    current_ward: str
    target_ward: str
    status: TransferRequestStatus
    requested_by: str
    created_at: datetime
    reason: str = ""
    notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    transfer_id: Optional[str] = None
    destination_unit_id: Optional[str] = None


ALERT_SEVERITY = {
    AlertLevel.NONE: 0,
    AlertLevel.WARNING: 1,
    AlertLevel.CRITICAL: 2,
    AlertLevel.EMERGENCY: 3,
}


@dataclass(frozen=True)
class OccupancyAlert:
    alert_id: str
    level: AlertLevel
    message: str
    created_at: datetime
    ward_id: Optional[str] = None
    occupancy_rate: Optional[float] = None
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
