"""Housekeeping queue: one cleaning job per stay of a unit in ``cleaning``."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from wardflow.domain.constraints import ensure_cleaning_job_transition
from wardflow.domain.errors import CleaningJobNotFoundError, InvalidStateTransition, WardFlowError
from wardflow.domain.models import CleaningJob, CleaningJobStatus, Unit, UnitStatus
from wardflow.repository.data_repository import DataRepository
from wardflow.services.allocation_service import AllocationProtocolService, utc_now
from wardflow.services.notification_service import (
    EventKind,
    Notifier,
    TransitionEvent,
    dispatch,
)
from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


class CleaningValidationError(WardFlowError):
    """Raised when a cleaning job command is malformed."""


class CleaningQueueService:
    """Opens and closes jobs from committed unit changes.

    A job is opened when a unit enters ``cleaning`` and completed when the unit
    leaves it by any path: manual completion, dwell expiry or a direct status
    change. Job writes happen inside the allocation unit of work.
    """

    def __init__(
        self,
        allocation_service: AllocationProtocolService,
        repository: DataRepository,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._allocation_service = allocation_service
        self._repository = repository
        self._notifier = notifier
        self._clock = clock or utc_now
        allocation_service.add_unit_listener(self._on_unit_changes)

    def _on_unit_changes(self, changes: Sequence[tuple[Optional[Unit], Unit]]) -> None:
        sequence = self._repository.count_cleaning_jobs()
        jobs: list[CleaningJob] = []
        for previous, current in changes:
            was_cleaning = previous is not None and previous.status == UnitStatus.CLEANING
            is_cleaning = current.status == UnitStatus.CLEANING
            if is_cleaning and not was_cleaning:
                sequence += 1
                jobs.append(
                    CleaningJob(
                        job_id=f"CLN-{sequence:06d}",
                        unit_id=current.unit_id,
                        ward_id=current.ward_id,
                        status=CleaningJobStatus.PENDING,
                        created_at=current.status_changed_at,
                    )
                )
            elif was_cleaning and not is_cleaning:
                open_job = self._repository.find_open_cleaning_job(current.unit_id)
                if open_job is not None:
                    jobs.append(
                        replace(
                            open_job,
                            status=CleaningJobStatus.COMPLETED,
                            completed_at=current.status_changed_at,
                        )
                    )
        if not jobs:
            return
        self._repository.save_cleaning_jobs(jobs)
        for job in jobs:
            logger.info(
                "Cleaning job %s | %s",
                "opened" if job.status == CleaningJobStatus.PENDING else "closed",
                format_fields(job_id=job.job_id, unit_id=job.unit_id, ward=job.ward_id),
            )

    def get_job(self, job_id: str) -> CleaningJob:
        job = self._repository.get_cleaning_job(job_id)
        if job is None:
            raise CleaningJobNotFoundError(f"job_id {job_id} not found")
        return job

    def list_jobs(
        self,
        status: Optional[CleaningJobStatus] = None,
        ward_id: Optional[str] = None,
    ) -> list[CleaningJob]:
        return self._repository.list_cleaning_jobs(status=status, ward_id=ward_id)

    def stats(self, status: Optional[CleaningJobStatus] = None) -> dict[str, Any]:
        jobs = self._repository.list_cleaning_jobs(status=status)
        by_ward = Counter(job.ward_id for job in jobs)
        by_status = Counter(job.status.value for job in jobs)
        return {
            "total": len(jobs),
            "by_status": {item.value: by_status.get(item.value, 0) for item in CleaningJobStatus},
            "by_ward": dict(sorted(by_ward.items())),
        }

    def assign(self, job_id: str, staff_ref: str) -> CleaningJob:
        if not staff_ref.strip():
            raise CleaningValidationError("staff_ref must be non-empty")
        with self._allocation_service.unit_of_work():
            job = self.get_job(job_id)
            if job.status == CleaningJobStatus.COMPLETED:
                raise InvalidStateTransition(
                    f"cleaning job {job_id}", job.status.value, "assigned", "job is already completed"
                )
            assigned = replace(job, assigned_to=staff_ref)
            self._repository.save_cleaning_jobs([assigned])
        logger.info("Cleaning job assigned | %s", format_fields(job_id=job_id, staff=staff_ref))
        self._emit(assigned, "assigned")
        return assigned

    def start(self, job_id: str) -> CleaningJob:
        now = self._clock()
        with self._allocation_service.unit_of_work():
            job = self.get_job(job_id)
            ensure_cleaning_job_transition(job_id, job.status, CleaningJobStatus.ACTIVE)
            started = replace(job, status=CleaningJobStatus.ACTIVE, started_at=now)
            self._repository.save_cleaning_jobs([started])
        logger.info("Cleaning job started | %s", format_fields(job_id=job_id, unit_id=job.unit_id))
        self._emit(started, "started")
        return started

    def complete(self, job_id: str) -> CleaningJob:
        """Finish an active job and return its unit to ``available``."""
        with self._allocation_service.unit_of_work():
            job = self.get_job(job_id)
            if job.status != CleaningJobStatus.ACTIVE:
                raise InvalidStateTransition(
                    f"cleaning job {job_id}",
                    job.status.value,
                    CleaningJobStatus.COMPLETED.value,
                    "job must be started first",
                )
            self._allocation_service.set_unit_status(job.unit_id, UnitStatus.AVAILABLE)
        completed = self.get_job(job_id)
        self._emit(completed, "completed")
        return completed

    def _emit(self, job: CleaningJob, action: str) -> None:
        dispatch(
            self._notifier,
            TransitionEvent(
                kind=EventKind.CLEANING_JOB,
                at=self._clock(),
                payload={"job_id": job.job_id, "unit_id": job.unit_id, "action": action},
            ),
        )
