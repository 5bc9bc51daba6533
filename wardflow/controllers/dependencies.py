"""Shared FastAPI dependency providers and domain error translation."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from wardflow.domain.errors import (
    AlertNotFoundError,
    CapacityInvariantViolation,
    CleaningJobNotFoundError,
    InsufficientForecastData,
    InvalidStateTransition,
    NoCapacity,
    RequestNotFoundError,
    TransferRequestNotFoundError,
    UnitNotFoundError,
    WardFlowError,
    WardNotFoundError,
)
from wardflow.services.advisory_service import AdvisoryService
from wardflow.services.aggregation_service import OccupancyAggregator
from wardflow.services.alert_service import AlertService
from wardflow.services.allocation_service import AllocationProtocolService
from wardflow.services.cleaning_service import CleaningQueueService
from wardflow.services.forecast_service import ForecastService
from wardflow.services.notification_service import InMemoryNotifier
from wardflow.services.sampling_service import SamplingClock
from wardflow.services.transfer_request_service import TransferRequestService


def _service(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_allocation_service(request: Request) -> AllocationProtocolService:
    return _service(request, "allocation_service", "Allocation service")


def get_aggregator(request: Request) -> OccupancyAggregator:
    return _service(request, "aggregator", "Occupancy aggregator")


def get_forecast_service(request: Request) -> ForecastService:
    return _service(request, "forecast_service", "Forecast service")


def get_advisory_service(request: Request) -> AdvisoryService:
    return _service(request, "advisory_service", "Advisory service")


def get_notifier(request: Request) -> InMemoryNotifier:
    return _service(request, "notifier", "Notifier")


def get_sampling_clock(request: Request) -> SamplingClock:
    return _service(request, "sampling_clock", "Sampling clock")


def get_transfer_request_service(request: Request) -> TransferRequestService:
    return _service(request, "transfer_request_service", "Transfer request service")


def get_cleaning_service(request: Request) -> CleaningQueueService:
    return _service(request, "cleaning_service", "Cleaning queue")


def get_alert_service(request: Request) -> AlertService:
    return _service(request, "alert_service", "Alert service")


def domain_http_error(exc: WardFlowError) -> HTTPException:
    """Map a core error onto its HTTP status."""
    if isinstance(exc, NoCapacity):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "no_capacity", "ward": exc.ward_id, "message": str(exc)},
        )
    if isinstance(exc, InvalidStateTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, CapacityInvariantViolation):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(
        exc,
        (
            UnitNotFoundError,
            RequestNotFoundError,
            WardNotFoundError,
            InsufficientForecastData,
            TransferRequestNotFoundError,
            CleaningJobNotFoundError,
            AlertNotFoundError,
        ),
    ):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
