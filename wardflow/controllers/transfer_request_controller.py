"""HTTP controller layer for reviewed ward-transfer requests."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from wardflow.controllers.dependencies import domain_http_error, get_transfer_request_service
from wardflow.domain.errors import WardFlowError
from wardflow.domain.models import TransferRequestStatus, WardTransferRequest
from wardflow.services.transfer_request_service import TransferRequestService
from wardflow.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/transfer-requests", tags=["transfer-requests"])


class SubmitTransferRequest(BaseModel):
    unit_id: str = Field(min_length=1)
    target_ward: str = Field(min_length=1)
    requested_by: str = Field(min_length=1)
    reason: str = ""
    notes: Optional[str] = None
    occupant_ref: Optional[str] = Field(default=None, min_length=1)

    @field_validator("unit_id", "target_ward", "requested_by")
    @classmethod
    def validate_non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Value must be non-empty")
        return value.strip()


class UpdateTransferRequest(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None


class ReviewTransferRequest(BaseModel):
    reviewed_by: str = Field(min_length=1)
    notes: Optional[str] = None


class DenyTransferRequest(BaseModel):
    reviewed_by: str = Field(min_length=1)
    reason: str = Field(min_length=1)


class TransferRequestResponse(BaseModel):
    transfer_request_id: str
    unit_id: str
    occupant_ref: str
    current_ward: str
    target_ward: str
    status: TransferRequestStatus
    requested_by: str
    created_at: datetime
    reason: str
    notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    transfer_id: Optional[str] = None
    destination_unit_id: Optional[str] = None

    @classmethod
    def from_request(cls, request: WardTransferRequest) -> "TransferRequestResponse":
        return cls(**request.__dict__)


@router.post("", response_model=TransferRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_transfer_request(
    payload: SubmitTransferRequest,
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> TransferRequestResponse:
    try:
        request = service.submit(
            payload.unit_id,
            payload.target_ward,
            payload.requested_by,
            reason=payload.reason,
            notes=payload.notes,
            occupant_ref=payload.occupant_ref,
        )
        return TransferRequestResponse.from_request(request)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.get("", response_model=list[TransferRequestResponse])
async def list_transfer_requests(
    request_status: Optional[TransferRequestStatus] = Query(default=None, alias="status"),
    current_ward: Optional[str] = None,
    target_ward: Optional[str] = None,
    limit: int = Query(default=50, gt=0, le=500),
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> list[TransferRequestResponse]:
    requests = service.list_requests(request_status, current_ward, target_ward, limit)
    return [TransferRequestResponse.from_request(item) for item in requests]


@router.get("/stats")
async def transfer_request_stats(
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> dict[str, int]:
    return service.stats()


@router.get("/{transfer_request_id}", response_model=TransferRequestResponse)
async def get_transfer_request(
    transfer_request_id: str,
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> TransferRequestResponse:
    try:
        return TransferRequestResponse.from_request(service.get(transfer_request_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.put("/{transfer_request_id}", response_model=TransferRequestResponse)
async def update_transfer_request(
    transfer_request_id: str,
    payload: UpdateTransferRequest,
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> TransferRequestResponse:
    try:
        request = service.update(transfer_request_id, reason=payload.reason, notes=payload.notes)
        return TransferRequestResponse.from_request(request)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{transfer_request_id}/approve", response_model=TransferRequestResponse)
async def approve_transfer_request(
    transfer_request_id: str,
    payload: ReviewTransferRequest,
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> TransferRequestResponse:
    """Move the occupant now; 409 ``no_capacity`` leaves the request pending."""
    try:
        request = service.approve(transfer_request_id, payload.reviewed_by, payload.notes)
        return TransferRequestResponse.from_request(request)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected transfer approval failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve transfer request",
        ) from exc


@router.post("/{transfer_request_id}/deny", response_model=TransferRequestResponse)
async def deny_transfer_request(
    transfer_request_id: str,
    payload: DenyTransferRequest,
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> TransferRequestResponse:
    try:
        request = service.deny(transfer_request_id, payload.reason, payload.reviewed_by)
        return TransferRequestResponse.from_request(request)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.delete("/{transfer_request_id}", response_model=TransferRequestResponse)
async def cancel_transfer_request(
    transfer_request_id: str,
    service: TransferRequestService = Depends(get_transfer_request_service),
) -> TransferRequestResponse:
    try:
        return TransferRequestResponse.from_request(service.cancel(transfer_request_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
