"""State machine edges and configuration validation rules."""

from __future__ import annotations

from dataclasses import dataclass

from wardflow.domain.errors import InvalidStateTransition
from wardflow.domain.models import (
    CleaningJobStatus,
    RequestStatus,
    TransferRequestStatus,
    UnitStatus,
)


UNIT_TRANSITIONS: dict[UnitStatus, frozenset[UnitStatus]] = {
    UnitStatus.AVAILABLE: frozenset(
        {UnitStatus.RESERVED, UnitStatus.OCCUPIED, UnitStatus.MAINTENANCE}
    ),
    UnitStatus.RESERVED: frozenset({UnitStatus.OCCUPIED, UnitStatus.AVAILABLE}),
    UnitStatus.OCCUPIED: frozenset({UnitStatus.CLEANING, UnitStatus.MAINTENANCE}),
    UnitStatus.CLEANING: frozenset({UnitStatus.AVAILABLE, UnitStatus.MAINTENANCE}),
    UnitStatus.MAINTENANCE: frozenset({UnitStatus.AVAILABLE}),
}

REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset(
        {RequestStatus.APPROVED, RequestStatus.DENIED, RequestStatus.CANCELLED}
    ),
    RequestStatus.APPROVED: frozenset({RequestStatus.FULFILLED, RequestStatus.CANCELLED}),
    RequestStatus.DENIED: frozenset(),
    RequestStatus.FULFILLED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

CLEANING_JOB_TRANSITIONS: dict[CleaningJobStatus, frozenset[CleaningJobStatus]] = {
    CleaningJobStatus.PENDING: frozenset({CleaningJobStatus.ACTIVE, CleaningJobStatus.COMPLETED}),
    CleaningJobStatus.ACTIVE: frozenset({CleaningJobStatus.COMPLETED}),
    CleaningJobStatus.COMPLETED: frozenset(),
}

TRANSFER_REQUEST_TRANSITIONS: dict[TransferRequestStatus, frozenset[TransferRequestStatus]] = {
    TransferRequestStatus.PENDING: frozenset(
        {
            TransferRequestStatus.COMPLETED,
            TransferRequestStatus.DENIED,
            TransferRequestStatus.CANCELLED,
        }
    ),
    TransferRequestStatus.COMPLETED: frozenset(),
    TransferRequestStatus.DENIED: frozenset(),
    TransferRequestStatus.CANCELLED: frozenset(),
}


def is_unit_transition_allowed(current: UnitStatus, target: UnitStatus) -> bool:
    return target in UNIT_TRANSITIONS[current]


def ensure_unit_transition(unit_id: str, current: UnitStatus, target: UnitStatus) -> None:
    if not is_unit_transition_allowed(current, target):
        raise InvalidStateTransition(f"unit {unit_id}", current.value, target.value)


def ensure_request_transition(
    request_id: str,
    current: RequestStatus,
    target: RequestStatus,
) -> None:
    if target not in REQUEST_TRANSITIONS[current]:
        raise InvalidStateTransition(f"request {request_id}", current.value, target.value)


def ensure_cleaning_job_transition(
    job_id: str,
    current: CleaningJobStatus,
    target: CleaningJobStatus,
) -> None:
    if target not in CLEANING_JOB_TRANSITIONS[current]:
        raise InvalidStateTransition(f"cleaning job {job_id}", current.value, target.value)


def ensure_transfer_request_transition(
    transfer_request_id: str,
    current: TransferRequestStatus,
    target: TransferRequestStatus,
) -> None:
    if target not in TRANSFER_REQUEST_TRANSITIONS[current]:
        raise InvalidStateTransition(
            f"transfer request {transfer_request_id}", current.value, target.value
        )


@dataclass(frozen=True)
class ForecastConfig:
    smoothing_alpha: float
    max_history_days: int
    live_epsilon: float


@dataclass(frozen=True)
class AdvisoryConfig:
    critical_threshold: float
    warning_threshold: float
    low_threshold: float


def validate_forecast_config(config: ForecastConfig) -> None:
    if not 0.0 < config.smoothing_alpha <= 1.0:
        raise ValueError("smoothing_alpha must be in (0, 1]")
    if config.max_history_days <= 0:
        raise ValueError("max_history_days must be > 0")
    if config.live_epsilon < 0.0:
        raise ValueError("live_epsilon must be >= 0")


def validate_advisory_config(config: AdvisoryConfig) -> None:
    if not 0.0 <= config.low_threshold < config.warning_threshold:
        raise ValueError("low_threshold must be in [0, warning_threshold)")
    if not config.warning_threshold < config.critical_threshold <= 100.0:
        raise ValueError("critical_threshold must be in (warning_threshold, 100]")
