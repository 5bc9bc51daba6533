"""HTTP controller layer for the housekeeping queue."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from wardflow.controllers.dependencies import domain_http_error, get_cleaning_service
from wardflow.domain.errors import WardFlowError
from wardflow.domain.models import CleaningJob, CleaningJobStatus
from wardflow.services.cleaning_service import CleaningQueueService


router = APIRouter(prefix="/cleaning-jobs", tags=["cleaning"])


class AssignCleaningJob(BaseModel):
    staff_ref: str = Field(min_length=1)


class CleaningJobResponse(BaseModel):
    job_id: str
    unit_id: str
    ward_id: str
    status: CleaningJobStatus
    created_at: datetime
    assigned_to: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: CleaningJob) -> "CleaningJobResponse":
        return cls(**job.__dict__)


class CleaningStatsResponse(BaseModel):
    total: int = Field(ge=0)
    by_status: dict[str, int]
    by_ward: dict[str, int]


@router.get("", response_model=list[CleaningJobResponse])
async def list_cleaning_jobs(
    job_status: Optional[CleaningJobStatus] = Query(default=None, alias="status"),
    ward_id: Optional[str] = None,
    service: CleaningQueueService = Depends(get_cleaning_service),
) -> list[CleaningJobResponse]:
    return [CleaningJobResponse.from_job(job) for job in service.list_jobs(job_status, ward_id)]


@router.get("/stats", response_model=CleaningStatsResponse)
async def cleaning_stats(
    job_status: Optional[CleaningJobStatus] = Query(default=None, alias="status"),
    service: CleaningQueueService = Depends(get_cleaning_service),
) -> CleaningStatsResponse:
    return CleaningStatsResponse(**service.stats(job_status))


@router.get("/{job_id}", response_model=CleaningJobResponse)
async def get_cleaning_job(
    job_id: str,
    service: CleaningQueueService = Depends(get_cleaning_service),
) -> CleaningJobResponse:
    try:
        return CleaningJobResponse.from_job(service.get_job(job_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{job_id}/assign", response_model=CleaningJobResponse)
async def assign_cleaning_job(
    job_id: str,
    payload: AssignCleaningJob,
    service: CleaningQueueService = Depends(get_cleaning_service),
) -> CleaningJobResponse:
    try:
        return CleaningJobResponse.from_job(service.assign(job_id, payload.staff_ref))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{job_id}/start", response_model=CleaningJobResponse)
async def start_cleaning_job(
    job_id: str,
    service: CleaningQueueService = Depends(get_cleaning_service),
) -> CleaningJobResponse:
    try:
        return CleaningJobResponse.from_job(service.start(job_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{job_id}/complete", response_model=CleaningJobResponse)
async def complete_cleaning_job(
    job_id: str,
    service: CleaningQueueService = Depends(get_cleaning_service),
) -> CleaningJobResponse:
    """Finish the job; the unit returns to ``available``."""
    try:
        return CleaningJobResponse.from_job(service.complete(job_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
