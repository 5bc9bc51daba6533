"""Reviewed ward-transfer requests layered over the direct transfer operation."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from wardflow.domain.constraints import ensure_transfer_request_transition
from wardflow.domain.errors import (
    InvalidStateTransition,
    TransferRequestNotFoundError,
    WardFlowError,
)
from wardflow.domain.models import TransferRequestStatus, UnitStatus, WardTransferRequest
from wardflow.repository.data_repository import DataRepository
from wardflow.services.allocation_service import AllocationProtocolService, utc_now
from wardflow.services.notification_service import (
    EventKind,
    Notifier,
    TransitionEvent,
    dispatch,
)
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


class TransferValidationError(WardFlowError):
    """Raised when a transfer request cannot be accepted as submitted."""


class TransferRequestService:
    """Pending transfer requests that move the occupant only once approved.

    Approval picks the best available unit in the target ward through
    ``AllocationProtocolService.transfer``; when the target ward is full the
    request stays pending.
    """

    def __init__(
        self,
        allocation_service: AllocationProtocolService,
        repository: DataRepository,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._allocation_service = allocation_service
        self._repository = repository
        self._notifier = notifier
        self._clock = clock or utc_now

    def submit(
        self,
        unit_id: str,
        target_ward: str,
        requested_by: str,
        *,
        reason: str = "",
        notes: Optional[str] = None,
        occupant_ref: Optional[str] = None,
    ) -> WardTransferRequest:
        if not requested_by.strip():
            raise TransferValidationError("requested_by must be non-empty")
        if target_ward in self._settings.transfer_blocked_destinations:
            raise TransferValidationError(f"transfers into {target_ward} are not accepted")
        now = self._clock()
        registry = self._allocation_service.registry
        with self._allocation_service.unit_of_work():
            unit = registry.get_unit(unit_id)
            registry.get_ward(target_ward)
            if unit.status != UnitStatus.OCCUPIED or not unit.occupant_ref:
                raise InvalidStateTransition(
                    f"unit {unit_id}", unit.status.value, "transfer request", "unit has no occupant"
                )
            if occupant_ref is not None and occupant_ref != unit.occupant_ref:
                raise TransferValidationError(f"occupant {occupant_ref} is not in unit {unit_id}")
            if unit.ward_id == target_ward:
                raise TransferValidationError("target ward must differ from the current ward")
            if self._repository.list_ward_transfer_requests(
                status=TransferRequestStatus.PENDING, unit_id=unit_id
            ):
                raise TransferValidationError(f"unit {unit_id} already has a pending transfer request")

            sequence = self._repository.count_ward_transfer_requests() + 1
            request = WardTransferRequest(
                transfer_request_id=f"WTR-{sequence:06d}",
                unit_id=unit_id,
                occupant_ref=unit.occupant_ref,
                current_ward=unit.ward_id,
                target_ward=target_ward,
                status=TransferRequestStatus.PENDING,
                requested_by=requested_by,
                created_at=now,
                reason=reason,
                notes=notes,
            )
            self._repository.save_ward_transfer_request(request)

        logger.info(
            "Transfer request submitted | %s",
            format_fields(
                transfer_request_id=request.transfer_request_id,
                unit_id=unit_id,
                from_ward=request.current_ward,
                to_ward=target_ward,
            ),
        )
        self._emit(request)
        return request

    def get(self, transfer_request_id: str) -> WardTransferRequest:
        request = self._repository.get_ward_transfer_request(transfer_request_id)
        if request is None:
            raise TransferRequestNotFoundError(f"transfer_request_id {transfer_request_id} not found")
        return request

    def list_requests(
        self,
        status: Optional[TransferRequestStatus] = None,
        current_ward: Optional[str] = None,
        target_ward: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[WardTransferRequest]:
        return self._repository.list_ward_transfer_requests(
            status=status,
            current_ward=current_ward,
            target_ward=target_ward,
            limit=limit or self._settings.transfer_request_list_limit,
        )

    def update(
        self,
        transfer_request_id: str,
        *,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> WardTransferRequest:
        """Edit the free-text fields of a request that is still pending."""
        with self._allocation_service.unit_of_work():
            request = self._pending(transfer_request_id, "updated")
            updated = replace(
                request,
                reason=request.reason if reason is None else reason,
                notes=request.notes if notes is None else notes,
            )
            self._repository.save_ward_transfer_request(updated)
        return updated

    def approve(
        self,
        transfer_request_id: str,
        reviewed_by: str,
        notes: Optional[str] = None,
    ) -> WardTransferRequest:
        if not reviewed_by.strip():
            raise TransferValidationError("reviewed_by must be non-empty")
        now = self._clock()
        with self._allocation_service.unit_of_work() as registry:
            request = self.get(transfer_request_id)
            ensure_transfer_request_transition(
                transfer_request_id, request.status, TransferRequestStatus.COMPLETED
            )
            unit = registry.get_unit(request.unit_id)
            if unit.status != UnitStatus.OCCUPIED or unit.occupant_ref != request.occupant_ref:
                raise InvalidStateTransition(
                    f"transfer request {transfer_request_id}",
                    request.status.value,
                    TransferRequestStatus.COMPLETED.value,
                    f"occupant {request.occupant_ref} is no longer in unit {request.unit_id}",
                )
            result = self._allocation_service.transfer(
                request.unit_id, request.target_ward, request.reason
            )
            completed = replace(
                request,
                status=TransferRequestStatus.COMPLETED,
                reviewed_by=reviewed_by,
                reviewed_at=now,
                notes=notes if notes is not None else request.notes,
                transfer_id=result.record.transfer_id,
                destination_unit_id=result.admitted_unit.unit_id,
            )
            self._repository.save_ward_transfer_request(completed)

        logger.info(
            "Transfer request approved | %s",
            format_fields(
                transfer_request_id=transfer_request_id,
                reviewed_by=reviewed_by,
                destination_unit=completed.destination_unit_id,
            ),
        )
        self._emit(completed)
        return completed

    def deny(self, transfer_request_id: str, reason: str, reviewed_by: str) -> WardTransferRequest:
        if not reason.strip():
            raise TransferValidationError("a denial reason is required")
        if not reviewed_by.strip():
            raise TransferValidationError("reviewed_by must be non-empty")
        now = self._clock()
        with self._allocation_service.unit_of_work():
            request = self.get(transfer_request_id)
            ensure_transfer_request_transition(
                transfer_request_id, request.status, TransferRequestStatus.DENIED
            )
            denied = replace(
                request,
                status=TransferRequestStatus.DENIED,
                denial_reason=reason,
                reviewed_by=reviewed_by,
                reviewed_at=now,
            )
            self._repository.save_ward_transfer_request(denied)
        logger.info(
            "Transfer request denied | %s",
            format_fields(transfer_request_id=transfer_request_id, reason=reason),
        )
        self._emit(denied)
        return denied

    def cancel(self, transfer_request_id: str) -> WardTransferRequest:
        with self._allocation_service.unit_of_work():
            request = self.get(transfer_request_id)
            ensure_transfer_request_transition(
                transfer_request_id, request.status, TransferRequestStatus.CANCELLED
            )
            cancelled = replace(request, status=TransferRequestStatus.CANCELLED)
            self._repository.save_ward_transfer_request(cancelled)
        self._emit(cancelled)
        return cancelled

    def stats(self) -> dict[str, Any]:
        requests = self._repository.list_ward_transfer_requests()
        return {
            "total": len(requests),
            **{
                status.value: sum(1 for item in requests if item.status == status)
                for status in TransferRequestStatus
            },
        }

    def _pending(self, transfer_request_id: str, action: str) -> WardTransferRequest:
        request = self.get(transfer_request_id)
        if request.status != TransferRequestStatus.PENDING:
            raise InvalidStateTransition(
                f"transfer request {transfer_request_id}",
                request.status.value,
                action,
                "only pending requests can change",
            )
        return request

    def _emit(self, request: WardTransferRequest) -> None:
        dispatch(
            self._notifier,
            TransitionEvent(
                kind=EventKind.TRANSFER_REQUEST,
                at=self._clock(),
                payload={
                    "transfer_request_id": request.transfer_request_id,
                    "unit_id": request.unit_id,
                    "status": request.status.value,
                },
            ),
        )
