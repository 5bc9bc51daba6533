"""HTTP controller layer for wards, beds and transfers."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from wardflow.controllers.dependencies import domain_http_error, get_allocation_service
from wardflow.domain.errors import WardFlowError
from wardflow.domain.models import Unit, UnitSpec, UnitStatus, Ward
from wardflow.services.allocation_service import AllocationProtocolService
from wardflow.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["beds"])


class UnitResponse(BaseModel):
    unit_id: str
    ward_id: str
    status: UnitStatus
    status_changed_at: datetime
    equipment_tag: Optional[str] = None
    occupant_ref: Optional[str] = None
    expected_departure: Optional[datetime] = None

    @classmethod
    def from_unit(cls, unit: Unit) -> "UnitResponse":
        return cls(
            unit_id=unit.unit_id,
            ward_id=unit.ward_id,
            status=unit.status,
            status_changed_at=unit.status_changed_at,
            equipment_tag=unit.equipment_tag,
            occupant_ref=unit.occupant_ref,
            expected_departure=unit.expected_departure,
        )


class WardResponse(BaseModel):
    ward_id: str
    capacity: int = Field(gt=0)
    unit_ids: list[str]

    @classmethod
    def from_ward(cls, ward: Ward) -> "WardResponse":
        return cls(ward_id=ward.ward_id, capacity=ward.capacity, unit_ids=list(ward.unit_ids))


class UnitStatusUpdateRequest(BaseModel):
    status: UnitStatus
    occupant_ref: Optional[str] = Field(default=None, min_length=1)
    expected_departure: Optional[datetime] = None


class TransferRequest(BaseModel):
    destination_ward: str = Field(min_length=1)
    reason: str = ""


class TransferResponse(BaseModel):
    transfer_id: str
    released_unit: UnitResponse
    admitted_unit: UnitResponse


class RecommendationResponse(BaseModel):
    unit: UnitResponse
    match_level: str


class UnitSpecRequest(BaseModel):
    unit_id: str = Field(min_length=1)
    equipment_tag: Optional[str] = None


class ProvisionWardRequest(BaseModel):
    ward_id: str = Field(min_length=1)
    units: list[UnitSpecRequest] = Field(min_length=1)


class NewUnitRequest(UnitSpecRequest):
    ward_id: str = Field(min_length=1)


class ReconfigureRequest(BaseModel):
    capacities: dict[str, int]
    moves: dict[str, str] = Field(default_factory=dict)
    new_units: list[NewUnitRequest] = Field(default_factory=list)

    @field_validator("capacities")
    @classmethod
    def validate_capacities(cls, value: dict[str, int]) -> dict[str, int]:
        for ward_id, capacity in value.items():
            if not ward_id.strip():
                raise ValueError("capacities ward_id must be non-empty")
            if capacity <= 0:
                raise ValueError("capacities capacity must be > 0")
        return value


@router.get("/wards", response_model=list[WardResponse])
async def list_wards(
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> list[WardResponse]:
    return [WardResponse.from_ward(ward) for ward in service.registry.wards()]


@router.post("/wards", response_model=WardResponse, status_code=status.HTTP_201_CREATED)
async def provision_ward(
    payload: ProvisionWardRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> WardResponse:
    try:
        ward = service.provision_ward(
            payload.ward_id,
            [UnitSpec(unit_id=item.unit_id, equipment_tag=item.equipment_tag) for item in payload.units],
        )
        return WardResponse.from_ward(ward)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/wards/reconfigure", response_model=list[WardResponse])
async def reconfigure_wards(
    payload: ReconfigureRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> list[WardResponse]:
    """Bulk capacity change; rejected whole when any ward loses unit/capacity parity."""
    try:
        wards = service.reconfigure_wards(
            capacities=payload.capacities,
            moves=payload.moves,
            new_units=[
                (item.ward_id, UnitSpec(unit_id=item.unit_id, equipment_tag=item.equipment_tag))
                for item in payload.new_units
            ],
        )
        return [WardResponse.from_ward(ward) for ward in wards]
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/beds", response_model=list[UnitResponse])
async def list_beds(
    ward_id: Optional[str] = None,
    unit_status: Optional[UnitStatus] = Query(default=None, alias="status"),
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> list[UnitResponse]:
    try:
        units = service.registry.units(ward_id=ward_id, status=unit_status)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    return [UnitResponse.from_unit(unit) for unit in units]


@router.get("/beds/recommendations", response_model=list[RecommendationResponse])
async def recommend_beds(
    ward_id: Optional[str] = None,
    equipment_tag: Optional[str] = None,
    limit: Optional[int] = Query(default=None, gt=0),
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> list[RecommendationResponse]:
    try:
        recommendations = service.recommend_units(
            ward_id=ward_id,
            equipment_tag=equipment_tag,
            limit=limit,
        )
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    return [
        RecommendationResponse(unit=UnitResponse.from_unit(item.unit), match_level=item.match_level.value)
        for item in recommendations
    ]


@router.get("/beds/{unit_id}", response_model=UnitResponse)
async def get_bed(
    unit_id: str,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> UnitResponse:
    try:
        return UnitResponse.from_unit(service.registry.get_unit(unit_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.patch("/beds/{unit_id}/status", response_model=UnitResponse)
async def set_bed_status(
    unit_id: str,
    payload: UnitStatusUpdateRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> UnitResponse:
    try:
        unit = service.set_unit_status(
            unit_id,
            payload.status,
            occupant_ref=payload.occupant_ref,
            expected_departure=payload.expected_departure,
        )
        return UnitResponse.from_unit(unit)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected unit status failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update unit status",
        ) from exc


@router.post("/beds/{unit_id}/discharge", response_model=UnitResponse)
async def discharge_bed(
    unit_id: str,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> UnitResponse:
    try:
        return UnitResponse.from_unit(service.discharge(unit_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected discharge failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to discharge unit",
        ) from exc


@router.post("/beds/{unit_id}/transfer", response_model=TransferResponse)
async def transfer_bed(
    unit_id: str,
    payload: TransferRequest,
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> TransferResponse:
    try:
        result = service.transfer(unit_id, payload.destination_ward, payload.reason)
        return TransferResponse(
            transfer_id=result.record.transfer_id,
            released_unit=UnitResponse.from_unit(result.released_unit),
            admitted_unit=UnitResponse.from_unit(result.admitted_unit),
        )
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected transfer failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to transfer patient",
        ) from exc


class TransferRecordResponse(BaseModel):
    transfer_id: str
    occupant_ref: str
    source_unit_id: str
    source_ward: str
    destination_unit_id: str
    destination_ward: str
    reason: str
    transferred_at: datetime


@router.get("/transfers", response_model=list[TransferRecordResponse])
async def list_transfers(
    service: AllocationProtocolService = Depends(get_allocation_service),
) -> list[TransferRecordResponse]:
    return [
        TransferRecordResponse(
            transfer_id=record.transfer_id,
            occupant_ref=record.occupant_ref,
            source_unit_id=record.source_unit_id,
            source_ward=record.source_ward,
            destination_unit_id=record.destination_unit_id,
            destination_ward=record.destination_ward,
            reason=record.reason,
            transferred_at=record.transferred_at,
        )
        for record in service.list_transfers()
    ]
