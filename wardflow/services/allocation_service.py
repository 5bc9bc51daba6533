"""Bed lifecycle protocol: admission requests, discharge, transfer and dwell expiry."""

from __future__ import annotations

from collections import Counter, defaultdict
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence

from wardflow.domain.constraints import ensure_request_transition
from wardflow.domain.errors import (
    InvalidStateTransition,
    NoCapacity,
    RequestNotFoundError,
    WardFlowError,
    WardNotFoundError,
)
from wardflow.domain.models import (
    BedRequest,
    MatchLevel,
    RequestStatus,
    TransferRecord,
    TransferResult,
    Unit,
    UnitRecommendation,
    UnitSpec,
    UnitStatus,
    Ward,
)
from wardflow.domain.registry import BedRegistry
from wardflow.repository.data_repository import DataRepository
from wardflow.services.notification_service import (
    EventKind,
    Notifier,
    TransitionEvent,
    dispatch,
)
from wardflow.utils.config import Settings, WardLayout, get_settings
from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)

Clock = Callable[[], datetime]
UnitChangeListener = Callable[[Sequence[tuple[Optional[Unit], Unit]]], None]

_MATCH_RANK = {
    MatchLevel.PERFECT: 0,
    MatchLevel.EQUIPMENT_MATCH: 1,
    MatchLevel.WARD_MATCH: 2,
    MatchLevel.OTHER: 3,
}

DEFAULT_DENIAL_REASON = "No available beds matching criteria"


class AllocationValidationError(WardFlowError):
    """Raised when request inputs are malformed."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def classify_match(
    unit: Unit,
    requested_ward: Optional[str],
    equipment_tag: Optional[str],
) -> MatchLevel:
    ward_ok = requested_ward is None or unit.ward_id == requested_ward
    equipment_ok = equipment_tag is None or unit.equipment_tag == equipment_tag
    if ward_ok and equipment_ok:
        return MatchLevel.PERFECT
    if equipment_ok:
        return MatchLevel.EQUIPMENT_MATCH
    if ward_ok:
        return MatchLevel.WARD_MATCH
    return MatchLevel.OTHER


def rank_candidates(
    units: Sequence[Unit],
    requested_ward: Optional[str],
    equipment_tag: Optional[str],
) -> list[UnitRecommendation]:
    """Order available units for admission.

    Ward and equipment both matching wins; when only one can be satisfied the
    equipment match is preferred over the ward match. Ties go to the lowest
    unit id.
    """
    ranked = [
        UnitRecommendation(unit=unit, match_level=classify_match(unit, requested_ward, equipment_tag))
        for unit in units
        if unit.status == UnitStatus.AVAILABLE
    ]
    ranked.sort(key=lambda item: (_MATCH_RANK[item.match_level], item.unit.unit_id))
    return ranked


def build_layout_specs(layout: Sequence[WardLayout]) -> list[tuple[str, list[UnitSpec]]]:
    """Number beds ``BED-001``.. sequentially across the configured wards."""
    wards: list[tuple[str, list[UnitSpec]]] = []
    sequence = 0
    for entry in layout:
        specs: list[UnitSpec] = []
        for _ in range(entry.capacity):
            sequence += 1
            specs.append(UnitSpec(unit_id=f"BED-{sequence:03d}", equipment_tag=entry.equipment_tag))
        wards.append((entry.ward_id, specs))
    return wards


class AllocationProtocolService:
    """Serializes every unit and request mutation through the registry lock.

    Persistence is written through after each committed change and
    notifications are dispatched after the lock is released.
    """

    def __init__(
        self,
        registry: BedRegistry,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._registry = registry
        self._repository = repository
        self._notifier = notifier
        self._clock = clock or utc_now
        self._requests: dict[str, BedRequest] = {}
        self._active_request_by_unit: dict[str, str] = {}
        self._request_sequence = 0
        self._transfer_sequence = 0
        self._unit_listeners: list[UnitChangeListener] = []
        self._work_depth = 0

    @property
    def registry(self) -> BedRegistry:
        return self._registry

    def add_unit_listener(self, listener: UnitChangeListener) -> None:
        """Register a callback for the units changed by each committed unit of work."""
        self._unit_listeners.append(listener)

    @contextmanager
    def unit_of_work(self) -> Iterator[BedRegistry]:
        """Registry-atomic section that also restores request bookkeeping on failure.

        On failure the rows written inside the outermost section are written
        back with their previous values.

        Unit listeners run once at the end of the outermost section, still under
        the registry lock; a listener failure rolls the whole section back.
        """
        with self._registry.atomic():
            saved = (
                dict(self._requests),
                dict(self._active_request_by_unit),
                self._request_sequence,
                self._transfer_sequence,
            )
            self._work_depth += 1
            try:
                yield self._registry
                if self._work_depth == 1 and self._unit_listeners:
                    changes = self._registry.journaled_changes()
                    if changes:
                        for listener in self._unit_listeners:
                            listener(changes)
            except BaseException:
                changed_units = [
                    previous for previous, _ in self._registry.journaled_changes() if previous is not None
                ]
                changed_requests = [
                    request
                    for request_id, request in saved[0].items()
                    if self._requests.get(request_id) != request
                ]
                (
                    self._requests,
                    self._active_request_by_unit,
                    self._request_sequence,
                    self._transfer_sequence,
                ) = saved
                if self._work_depth == 1:
                    self._restore_persisted(changed_units, changed_requests)
                raise
            finally:
                self._work_depth -= 1

    # --- bootstrap and provisioning ---

    def bootstrap(self, layout: Optional[Sequence[WardLayout]] = None) -> None:
        """Hydrate registry and requests from the store, or provision the layout."""
        if self._repository is not None and self._repository.count_units() > 0:
            self._registry.load(self._repository.list_wards(), self._repository.list_units())
            for request in self._repository.list_requests():
                self._remember_request(request)
            self._request_sequence = self._repository.count_requests()
            self._transfer_sequence = self._repository.count_transfers()
            logger.info(
                "Registry hydrated from store | %s",
                format_fields(
                    wards=len(self._registry.ward_ids()),
                    requests=len(self._requests),
                ),
            )
            return

        for ward_id, specs in build_layout_specs(layout or self._settings.ward_layout):
            self.provision_ward(ward_id, specs)

    def provision_ward(self, ward_id: str, specs: Sequence[UnitSpec]) -> Ward:
        now = self._clock()
        with self.unit_of_work():
            ward = self._registry.provision_ward(ward_id, specs, at=now)
            self._persist_wards([ward])
            self._persist_units(self._registry.units(ward_id=ward_id))
        logger.info("Ward provisioned | %s", format_fields(ward_id=ward_id, capacity=ward.capacity))
        return ward

    def reconfigure_wards(
        self,
        *,
        capacities: Mapping[str, int],
        moves: Optional[Mapping[str, str]] = None,
        new_units: Sequence[tuple[str, UnitSpec]] = (),
    ) -> list[Ward]:
        now = self._clock()
        with self.unit_of_work():
            wards = self._registry.reconfigure(
                capacities=capacities,
                moves=moves,
                new_units=new_units,
                at=now,
            )
            self._persist_wards(wards)
            touched = [unit for ward in wards for unit in self._registry.units(ward_id=ward.ward_id)]
            self._persist_units(touched)
        logger.info(
            "Wards reconfigured | %s",
            format_fields(wards=",".join(ward.ward_id for ward in wards)),
        )
        return wards

    # --- requests ---

    def submit_request(
        self,
        *,
        ward_preference: Optional[str],
        equipment_tag: Optional[str] = None,
        priority: int = 3,
        eta: Optional[datetime] = None,
        patient_ref: Optional[str] = None,
    ) -> BedRequest:
        if not 1 <= priority <= 5:
            raise AllocationValidationError("priority must be between 1 and 5")
        if ward_preference is not None and not self._registry.has_ward(ward_preference):
            raise WardNotFoundError(f"ward_id {ward_preference} not found")

        now = self._clock()
        with self.unit_of_work():
            self._request_sequence += 1
            request_id = f"REQ-{self._request_sequence:06d}"
            request = BedRequest(
                request_id=request_id,
                requested_ward=ward_preference,
                equipment_tag=equipment_tag,
                priority=priority,
                eta=_as_utc(eta) if eta else now + timedelta(minutes=self._settings.default_eta_minutes),
                status=RequestStatus.PENDING,
                created_at=now,
                patient_ref=patient_ref or f"patient:{request_id}",
                updated_at=now,
            )
            self._store_request(request)

        logger.info(
            "Request submitted | %s",
            format_fields(
                request_id=request_id,
                ward=ward_preference,
                equipment=equipment_tag,
                priority=priority,
            ),
        )
        self._emit(EventKind.REQUEST_SUBMITTED, now, request_id=request_id, ward=ward_preference)
        return request

    def get_request(self, request_id: str) -> BedRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(f"request_id {request_id} not found")
        return request

    def list_requests(self, status: Optional[RequestStatus] = None) -> list[BedRequest]:
        requests = [
            request
            for request in self._requests.values()
            if status is None or request.status == status
        ]
        requests.sort(key=lambda item: (-item.priority, item.created_at, item.request_id))
        return requests

    def list_transfers(self) -> list[TransferRecord]:
        if self._repository is None:
            return []
        return self._repository.list_transfers()

    def request_stats(self) -> dict[str, Any]:
        by_status: Counter[str] = Counter()
        by_ward: dict[str, Counter[str]] = defaultdict(Counter)
        for request in self._requests.values():
            by_status[request.status.value] += 1
            by_ward[request.requested_ward or "Any"][request.status.value] += 1
        return {
            "total": len(self._requests),
            "by_status": {status.value: by_status.get(status.value, 0) for status in RequestStatus},
            "by_ward": {
                ward: {status.value: counts.get(status.value, 0) for status in RequestStatus}
                for ward, counts in sorted(by_ward.items())
            },
        }

    def recommend_units(
        self,
        *,
        ward_id: Optional[str] = None,
        equipment_tag: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[UnitRecommendation]:
        resolved_limit = limit if limit is not None else self._settings.recommendation_limit
        if resolved_limit <= 0:
            raise AllocationValidationError("limit must be > 0")
        available = self._registry.units(status=UnitStatus.AVAILABLE)
        return rank_candidates(available, ward_id, equipment_tag)[:resolved_limit]

    def approve(
        self,
        request_id: str,
        *,
        unit_id: Optional[str] = None,
        reservation_ttl: Optional[timedelta] = None,
    ) -> BedRequest:
        """Assign a unit to a pending request.

        The unit is reserved when the patient is still expected (future ETA)
        or a reservation TTL is given, otherwise it is occupied immediately.
        Raises NoCapacity with the request left pending when nothing is free.
        """
        now = self._clock()
        with self.unit_of_work():
            request = self.get_request(request_id)
            ensure_request_transition(request_id, request.status, RequestStatus.APPROVED)

            if unit_id is not None:
                unit = self._registry.get_unit(unit_id)
                if unit.status != UnitStatus.AVAILABLE:
                    target = UnitStatus.RESERVED if reservation_ttl else UnitStatus.OCCUPIED
                    raise InvalidStateTransition(
                        f"unit {unit_id}", unit.status.value, target.value, "unit is not available"
                    )
            else:
                candidates = rank_candidates(
                    self._registry.units(status=UnitStatus.AVAILABLE),
                    request.requested_ward,
                    request.equipment_tag,
                )
                if not candidates:
                    logger.warning(
                        "Approval rejected: no capacity | %s",
                        format_fields(request_id=request_id, ward=request.requested_ward),
                    )
                    raise NoCapacity(request.requested_ward, f"request {request_id} remains pending")
                unit = candidates[0].unit

            reserve = reservation_ttl is not None or request.eta > now
            if reserve:
                ttl = reservation_ttl or timedelta(hours=self._settings.reservation_ttl_hours)
                updated_unit = self._registry.transition(
                    unit.unit_id,
                    UnitStatus.RESERVED,
                    at=now,
                    occupant_ref=request.patient_ref,
                )
                expires_at: Optional[datetime] = now + ttl
            else:
                updated_unit = self._registry.transition(
                    unit.unit_id,
                    UnitStatus.OCCUPIED,
                    at=now,
                    occupant_ref=request.patient_ref,
                )
                expires_at = None

            approved = replace(
                request,
                status=RequestStatus.APPROVED,
                assigned_unit_id=updated_unit.unit_id,
                reservation_expires_at=expires_at,
                updated_at=now,
            )
            self._persist_units([updated_unit])
            self._store_request(approved)

        logger.info(
            "Request approved | %s",
            format_fields(
                request_id=request_id,
                unit_id=updated_unit.unit_id,
                ward=updated_unit.ward_id,
                unit_status=updated_unit.status.value,
                reservation_expires_at=expires_at.isoformat() if expires_at else None,
            ),
        )
        self._emit(
            EventKind.REQUEST_APPROVED,
            now,
            request_id=request_id,
            unit_id=updated_unit.unit_id,
            ward=updated_unit.ward_id,
        )
        if updated_unit.status == UnitStatus.OCCUPIED:
            self._emit(EventKind.ADMISSION, now, unit_id=updated_unit.unit_id, ward=updated_unit.ward_id)
        return approved

    def deny(self, request_id: str, reason: Optional[str] = None) -> BedRequest:
        now = self._clock()
        with self.unit_of_work():
            request = self.get_request(request_id)
            ensure_request_transition(request_id, request.status, RequestStatus.DENIED)
            denied = replace(
                request,
                status=RequestStatus.DENIED,
                denial_reason=reason or DEFAULT_DENIAL_REASON,
                updated_at=now,
            )
            self._store_request(denied)
        logger.info("Request denied | %s", format_fields(request_id=request_id, reason=denied.denial_reason))
        self._emit(EventKind.REQUEST_DENIED, now, request_id=request_id, reason=denied.denial_reason)
        return denied

    def cancel(self, request_id: str, reason: str = "") -> BedRequest:
        """Cancel a pending or approved request, releasing a held reservation.

        An approved request whose patient already occupies the unit cannot be
        cancelled; that unit must be discharged instead.
        """
        now = self._clock()
        released: Optional[Unit] = None
        with self.unit_of_work():
            request = self.get_request(request_id)
            ensure_request_transition(request_id, request.status, RequestStatus.CANCELLED)
            if request.status == RequestStatus.APPROVED and request.assigned_unit_id:
                unit = self._registry.get_unit(request.assigned_unit_id)
                if unit.status != UnitStatus.RESERVED:
                    raise InvalidStateTransition(
                        f"request {request_id}",
                        request.status.value,
                        RequestStatus.CANCELLED.value,
                        f"unit {unit.unit_id} is {unit.status.value}; discharge it instead",
                    )
                released = self._registry.transition(unit.unit_id, UnitStatus.AVAILABLE, at=now)
                self._persist_units([released])
            cancelled = self._close_request(request, RequestStatus.CANCELLED, now, reason=reason)

        logger.info(
            "Request cancelled | %s",
            format_fields(
                request_id=request_id,
                released_unit=released.unit_id if released else None,
                reason=reason or None,
            ),
        )
        self._emit(EventKind.REQUEST_CANCELLED, now, request_id=request_id, reason=reason)
        return cancelled

    def admit(self, request_id: str) -> Unit:
        """Record the arrival of a patient holding a reservation."""
        now = self._clock()
        with self.unit_of_work():
            request = self.get_request(request_id)
            if request.status != RequestStatus.APPROVED or request.assigned_unit_id is None:
                raise InvalidStateTransition(
                    f"request {request_id}", request.status.value, "admitted", "request holds no unit"
                )
            unit = self._registry.transition(request.assigned_unit_id, UnitStatus.OCCUPIED, at=now)
            self._store_request(replace(request, reservation_expires_at=None, updated_at=now))
            self._persist_units([unit])
        logger.info("Patient admitted | %s", format_fields(request_id=request_id, unit_id=unit.unit_id))
        self._emit(EventKind.ADMISSION, now, unit_id=unit.unit_id, ward=unit.ward_id, request_id=request_id)
        return unit

    # --- unit operations ---

    def discharge(self, unit_id: str) -> Unit:
        return self.set_unit_status(unit_id, UnitStatus.CLEANING)

    def set_unit_status(
        self,
        unit_id: str,
        new_status: UnitStatus,
        *,
        occupant_ref: Optional[str] = None,
        expected_departure: Optional[datetime] = None,
    ) -> Unit:
        """Apply one state machine edge and the request bookkeeping it implies."""
        now = self._clock()
        with self.unit_of_work():
            current = self._registry.get_unit(unit_id)
            updated = self._registry.transition(
                unit_id,
                new_status,
                at=now,
                occupant_ref=occupant_ref,
                expected_departure=_as_utc(expected_departure) if expected_departure else None,
            )
            linked_id = self._active_request_by_unit.get(unit_id)
            if linked_id is not None:
                linked = self._requests[linked_id]
                if current.status == UnitStatus.OCCUPIED:
                    self._close_request(linked, RequestStatus.FULFILLED, now)
                elif current.status == UnitStatus.RESERVED and new_status == UnitStatus.AVAILABLE:
                    self._close_request(
                        linked, RequestStatus.CANCELLED, now, reason="reservation released"
                    )
                elif new_status == UnitStatus.OCCUPIED:
                    self._store_request(replace(linked, reservation_expires_at=None, updated_at=now))
            self._persist_units([updated])

        logger.info(
            "Unit transition committed | %s",
            format_fields(
                unit_id=unit_id,
                ward=updated.ward_id,
                from_status=current.status.value,
                to_status=new_status.value,
            ),
        )
        if current.status == UnitStatus.OCCUPIED and new_status == UnitStatus.CLEANING:
            kind = EventKind.DISCHARGE
        elif new_status == UnitStatus.OCCUPIED:
            kind = EventKind.ADMISSION
        else:
            kind = EventKind.UNIT_UPDATED
        self._emit(kind, now, unit_id=unit_id, ward=updated.ward_id, status=new_status.value)
        return updated

    def transfer(self, unit_id: str, destination_ward: str, reason: str = "") -> TransferResult:
        """Move an occupant to an available unit in ``destination_ward``.

        Both halves commit together; on NoCapacity the source stays occupied.
        """
        now = self._clock()
        with self.unit_of_work():
            source = self._registry.get_unit(unit_id)
            if source.status != UnitStatus.OCCUPIED:
                raise InvalidStateTransition(
                    f"unit {unit_id}", source.status.value, "transfer", "only occupied units can transfer"
                )
            self._registry.get_ward(destination_ward)
            candidates = rank_candidates(
                self._registry.units(ward_id=destination_ward, status=UnitStatus.AVAILABLE),
                destination_ward,
                source.equipment_tag,
            )
            if not candidates:
                logger.warning(
                    "Transfer rejected: no capacity | %s",
                    format_fields(unit_id=unit_id, destination_ward=destination_ward),
                )
                raise NoCapacity(destination_ward, f"unit {unit_id} was not moved")

            occupant = source.occupant_ref or ""
            released = self._registry.transition(unit_id, UnitStatus.CLEANING, at=now)
            admitted = self._registry.transition(
                candidates[0].unit.unit_id,
                UnitStatus.OCCUPIED,
                at=now,
                occupant_ref=occupant,
                expected_departure=source.expected_departure,
            )

            linked_id = self._active_request_by_unit.get(unit_id)
            if linked_id is not None:
                self._store_request(
                    replace(self._requests[linked_id], assigned_unit_id=admitted.unit_id, updated_at=now)
                )

            self._transfer_sequence += 1
            record = TransferRecord(
                transfer_id=f"TRF-{self._transfer_sequence:06d}",
                occupant_ref=occupant,
                source_unit_id=released.unit_id,
                source_ward=released.ward_id,
                destination_unit_id=admitted.unit_id,
                destination_ward=admitted.ward_id,
                reason=reason,
                transferred_at=now,
            )
            self._persist_units([released, admitted])
            if self._repository is not None:
                self._repository.save_transfer(record)

        logger.info(
            "Transfer committed | %s",
            format_fields(
                transfer_id=record.transfer_id,
                source_unit=released.unit_id,
                destination_unit=admitted.unit_id,
                destination_ward=destination_ward,
                reason=reason or None,
            ),
        )
        self._emit(
            EventKind.TRANSFER,
            now,
            transfer_id=record.transfer_id,
            source_unit=released.unit_id,
            destination_unit=admitted.unit_id,
            destination_ward=destination_ward,
        )
        return TransferResult(released_unit=released, admitted_unit=admitted, record=record)

    # --- time-triggered edges ---

    def expire_dwell(self, now: Optional[datetime] = None) -> list[Unit]:
        """Return cleaning units that have dwelt long enough to ``available``."""
        now = now or self._clock()
        dwell = timedelta(minutes=self._settings.cleaning_dwell_minutes)
        released: list[Unit] = []
        with self.unit_of_work():
            for unit in self._registry.units(status=UnitStatus.CLEANING):
                if now - unit.status_changed_at >= dwell:
                    released.append(
                        self._registry.transition(unit.unit_id, UnitStatus.AVAILABLE, at=now)
                    )
            self._persist_units(released)
        if released:
            logger.info(
                "Dwell expiry released units | %s",
                format_fields(count=len(released), units=",".join(unit.unit_id for unit in released)),
            )
        for unit in released:
            self._emit(EventKind.UNIT_UPDATED, now, unit_id=unit.unit_id, ward=unit.ward_id, status="available")
        return released

    def expire_reservations(self, now: Optional[datetime] = None) -> list[BedRequest]:
        """Cancel approved requests whose reserved unit was never claimed."""
        if not self._settings.reservation_auto_expire:
            return []
        now = now or self._clock()
        expired: list[BedRequest] = []
        with self.unit_of_work():
            for request in list(self._requests.values()):
                if (
                    request.status != RequestStatus.APPROVED
                    or request.reservation_expires_at is None
                    or request.reservation_expires_at > now
                    or request.assigned_unit_id is None
                ):
                    continue
                unit = self._registry.get_unit(request.assigned_unit_id)
                if unit.status != UnitStatus.RESERVED:
                    continue
                released = self._registry.transition(unit.unit_id, UnitStatus.AVAILABLE, at=now)
                self._persist_units([released])
                expired.append(
                    self._close_request(request, RequestStatus.CANCELLED, now, reason="reservation expired")
                )
        for request in expired:
            logger.info(
                "Reservation expired | %s",
                format_fields(request_id=request.request_id, unit_id=request.assigned_unit_id),
            )
            self._emit(EventKind.REQUEST_CANCELLED, now, request_id=request.request_id, reason="reservation expired")
        return expired

    # --- internals ---

    def _remember_request(self, request: BedRequest) -> None:
        self._requests[request.request_id] = request
        if request.status == RequestStatus.APPROVED and request.assigned_unit_id:
            self._active_request_by_unit[request.assigned_unit_id] = request.request_id
        stale = [
            unit_id
            for unit_id, request_id in self._active_request_by_unit.items()
            if request_id == request.request_id and unit_id != request.assigned_unit_id
        ]
        for unit_id in stale:
            del self._active_request_by_unit[unit_id]
        if request.is_terminal and request.assigned_unit_id:
            if self._active_request_by_unit.get(request.assigned_unit_id) == request.request_id:
                del self._active_request_by_unit[request.assigned_unit_id]

    def _store_request(self, request: BedRequest) -> None:
        if self._repository is not None:
            self._repository.save_request(request)
        self._remember_request(request)

    def _close_request(
        self,
        request: BedRequest,
        status: RequestStatus,
        now: datetime,
        *,
        reason: str = "",
    ) -> BedRequest:
        ensure_request_transition(request.request_id, request.status, status)
        closed = replace(
            request,
            status=status,
            reservation_expires_at=None,
            cancellation_reason=(reason or None) if status == RequestStatus.CANCELLED else None,
            updated_at=now,
        )
        self._store_request(closed)
        return closed

    def _restore_persisted(self, units: Sequence[Unit], requests: Sequence[BedRequest]) -> None:
        """Write back pre-section rows after a failed unit of work."""
        if self._repository is None or not (units or requests):
            return
        try:
            self._persist_units(units)
            for request in requests:
                self._repository.save_request(request)
        except Exception:
            logger.exception(
                "Rollback write-back failed | %s",
                format_fields(units=len(units), requests=len(requests)),
            )

    def _persist_units(self, units: Sequence[Unit]) -> None:
        if self._repository is not None and units:
            self._repository.save_units(units)

    def _persist_wards(self, wards: Sequence[Ward]) -> None:
        if self._repository is not None and wards:
            self._repository.save_wards(wards)

    def _emit(self, kind: EventKind, at: datetime, **payload: Any) -> None:
        dispatch(self._notifier, TransitionEvent(kind=kind, at=at, payload=payload))
