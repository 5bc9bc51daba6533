"""Error taxonomy shared by the allocation, aggregation and forecast layers."""

from __future__ import annotations

from typing import Optional


class WardFlowError(Exception):
    """Base class for all core failures."""


class InvalidStateTransition(WardFlowError):
    """Raised when an edge is not part of the unit or request state machine."""

    def __init__(self, entity: str, current: str, target: str, detail: str = "") -> None:
        self.entity = entity
        self.current = current
        self.target = target
        message = f"{entity}: illegal transition {current} -> {target}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class NoCapacity(WardFlowError):
    """Raised when no eligible unit exists; ``ward_id`` None means any ward."""

    def __init__(self, ward_id: Optional[str], detail: str = "") -> None:
        self.ward_id = ward_id
        scope = ward_id if ward_id is not None else "any ward"
        message = f"No available unit in {scope}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CapacityInvariantViolation(WardFlowError):
    """Raised before commit when a ward's member count would differ from its capacity."""

    def __init__(self, ward_id: str, expected: int, actual: int) -> None:
        self.ward_id = ward_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Ward {ward_id} would hold {actual} units but declares capacity {expected}"
        )


class InsufficientForecastData(WardFlowError):
    """Raised when a ward has no historical or live sample to project from."""

    def __init__(self, ward_id: str) -> None:
        self.ward_id = ward_id
        super().__init__(f"No occupancy samples available for ward {ward_id}")


class UnitNotFoundError(WardFlowError):
    """Raised for an unknown unit id."""


class RequestNotFoundError(WardFlowError):
    """Raised for an unknown request id."""


class WardNotFoundError(WardFlowError):
    """Raised for an unknown ward id."""


class CleaningJobNotFoundError(WardFlowError):
    """Raised for an unknown cleaning job id."""


class TransferRequestNotFoundError(WardFlowError):
    """Raised for an unknown ward transfer request id."""


class AlertNotFoundError(WardFlowError):
    """Raised for an unknown alert id."""
