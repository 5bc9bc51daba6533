"""HTTP controller layer for the bed request workflow."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from wardflow.controllers.dependencies import domain_http_error, get_allocation_service
from wardflow.controllers.bed_controller import UnitResponse
from wardflow.domain.errors import WardFlowError
from wardflow.domain.models import BedRequest, RequestStatus
from wardflow.services.allocation_service import AllocationProtocolService
from wardflow.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


class SubmitRequest(BaseModel):
    ward_preference: Optional[str] = Field(default=None, min_length=1)
    equipment_tag: Optional[str] = Field(default=None, min_length=1)
    priority: int = Field(default=3, ge=1, le=5)
    eta: Optional[datetime] = None
    patient_ref: Optional[str] = Field(default=None, min_length=1)


class ApproveRequest(BaseModel):
    unit_id: Optional[str] = Field(default=None, min_length=1)
    reservation_ttl_minutes: Optional[int] = Field(default=None, gt=0)


class ReasonRequest(BaseModel):
    reason: str = ""


class BedRequestResponse(BaseModel):
    request_id: str
    requested_ward: Optional[str]
    equipment_tag: Optional[str]
    priority: int = Field(ge=1, le=5)
    eta: datetime
    status: RequestStatus
    created_at: datetime
    patient_ref: str
    assigned_unit_id: Optional[str] = None
    reservation_expires_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_request(cls, request: BedRequest) -> "BedRequestResponse":
        return cls(
            request_id=request.request_id,
            requested_ward=request.requested_ward,
            equipment_tag=request.equipment_tag,
            priority=request.priority,
            eta=request.eta,
            status=request.status,
            created_at=request.created_at,
            patient_ref=request.patient_ref,
            assigned_unit_id=request.assigned_unit_id,
            reservation_expires_at=request.reservation_expires_at,
            denial_reason=request.denial_reason,
            cancellation_reason=request.cancellation_reason,
            updated_at=request.updated_at,
        )


class RequestStatsResponse(BaseModel):
    total: int = Field(ge=0)
    by_status: dict[str, int]
    by_ward: dict[str, dict[str, int]]


@router.post("", response_model=BedRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> BedRequestResponse:
    try:
        request = service.submit_request(
            ward_preference=payload.ward_preference,
            equipment_tag=payload.equipment_tag,
            priority=payload.priority,
            eta=payload.eta,
            patient_ref=payload.patient_ref,
        )
        return BedRequestResponse.from_request(request)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.get("", response_model=list[BedRequestResponse])
async def list_requests(
    request_status: Optional[RequestStatus] = Query(default=None, alias="status"),
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> list[BedRequestResponse]:
    return [BedRequestResponse.from_request(item) for item in service.list_requests(request_status)]


@router.get("/stats", response_model=RequestStatsResponse)
async def request_stats(
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> RequestStatsResponse:
    return RequestStatsResponse(**service.request_stats())


@router.get("/{request_id}", response_model=BedRequestResponse)
async def get_request(
    request_id: str,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> BedRequestResponse:
    try:
        return BedRequestResponse.from_request(service.get_request(request_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{request_id}/approve", response_model=BedRequestResponse)
async def approve_request(
    request_id: str,
    payload: ApproveRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> BedRequestResponse:
    """Assign a unit; 409 ``no_capacity`` leaves the request pending."""
    try:
        request = service.approve(
            request_id,
            unit_id=payload.unit_id,
            reservation_ttl=(
                timedelta(minutes=payload.reservation_ttl_minutes)
                if payload.reservation_ttl_minutes
                else None
            ),
        )
        return BedRequestResponse.from_request(request)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected approval failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve request",
        ) from exc


@router.post("/{request_id}/deny", response_model=BedRequestResponse)
async def deny_request(
    request_id: str,
    payload: ReasonRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> BedRequestResponse:
    try:
        return BedRequestResponse.from_request(service.deny(request_id, payload.reason or None))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{request_id}/cancel", response_model=BedRequestResponse)
async def cancel_request(
    request_id: str,
    payload: ReasonRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> BedRequestResponse:
    try:
        return BedRequestResponse.from_request(service.cancel(request_id, payload.reason))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{request_id}/admit", response_model=UnitResponse)
async def admit_request(
    request_id: str,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> UnitResponse:
    try:
        return UnitResponse.from_unit(service.admit(request_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
