"""HTTP controller layer for occupancy, forecasts and reallocation advice."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from wardflow.controllers.dependencies import (
    domain_http_error,
    get_advisory_service,
    get_aggregator,
    get_forecast_service,
    get_notifier,
    get_sampling_clock,
)
from wardflow.domain.errors import WardFlowError
from wardflow.domain.models import (
    AlertLevel,
    DailyRecord,
    OccupancySnapshot,
    Suggestion,
    SuggestionTier,
    Trend,
    WardForecast,
    WardStats,
)
from wardflow.services.advisory_service import AdvisoryService
from wardflow.services.aggregation_service import OccupancyAggregator
from wardflow.services.forecast_service import ForecastService
from wardflow.services.notification_service import InMemoryNotifier
from wardflow.services.sampling_service import SamplingClock
from wardflow.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["capacity"])


class WardStatsResponse(BaseModel):
    ward_id: Optional[str]
    total: int = Field(ge=0)
    available: int = Field(ge=0)
    occupied: int = Field(ge=0)
    cleaning: int = Field(ge=0)
    reserved: int = Field(ge=0)
    maintenance: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0.0, le=100.0)

    @classmethod
    def from_stats(cls, stats: WardStats) -> "WardStatsResponse":
        return cls(**stats.to_dict())


class SnapshotResponse(BaseModel):
    timestamp: datetime
    hospital: WardStatsResponse
    wards: list[WardStatsResponse]
    alert_level: AlertLevel

    @classmethod
    def from_snapshot(cls, snapshot: OccupancySnapshot) -> "SnapshotResponse":
        return cls(
            timestamp=snapshot.timestamp,
            hospital=WardStatsResponse.from_stats(snapshot.hospital),
            wards=[WardStatsResponse.from_stats(item) for item in snapshot.wards],
            alert_level=snapshot.alert_level,
        )


class DailyRecordResponse(BaseModel):
    record_date: date
    timestamp: datetime
    hospital: WardStatsResponse
    wards: list[WardStatsResponse]
    hourly_samples: int = Field(ge=0)
    peak_hour: bool

    @classmethod
    def from_record(cls, record: DailyRecord) -> "DailyRecordResponse":
        return cls(
            record_date=record.record_date,
            timestamp=record.timestamp,
            hospital=WardStatsResponse.from_stats(record.hospital),
            wards=[WardStatsResponse.from_stats(item) for item in record.wards],
            hourly_samples=len(record.hourly),
            peak_hour=record.peak_hour,
        )


class ForecastResponse(BaseModel):
    ward_id: str
    current_rate: float = Field(ge=0.0, le=100.0)
    projected_rate: float = Field(ge=0.0, le=100.0)
    trend: Trend
    scheduled_discharges: int = Field(ge=0)
    discharge_adjustment: float
    sample_count: int = Field(ge=1)

    @classmethod
    def from_forecast(cls, forecast: WardForecast) -> "ForecastResponse":
        return cls(
            ward_id=forecast.ward_id,
            current_rate=forecast.current_rate,
            projected_rate=forecast.projected_rate,
            trend=forecast.trend,
            scheduled_discharges=forecast.scheduled_discharges,
            discharge_adjustment=forecast.discharge_adjustment,
            sample_count=forecast.sample_count,
        )


class SuggestionResponse(BaseModel):
    tier: SuggestionTier
    rationale: str
    target_ward: Optional[str] = None
    source_ward: Optional[str] = None
    destination_wards: list[str] = Field(default_factory=list)

    @classmethod
    def from_suggestion(cls, suggestion: Suggestion) -> "SuggestionResponse":
        return cls(
            tier=suggestion.tier,
            rationale=suggestion.rationale,
            target_ward=suggestion.target_ward,
            source_ward=suggestion.source_ward,
            destination_wards=list(suggestion.destination_wards),
        )


class EventResponse(BaseModel):
    kind: str
    at: datetime
    payload: dict[str, Any]


class TickResponse(BaseModel):
    released_units: list[str]
    expired_requests: list[str]
    snapshot: SnapshotResponse
    closed_day: Optional[date] = None


@router.get("/capacity/snapshot", response_model=SnapshotResponse)
async def get_snapshot(
    aggregator: OccupancyAggregator = Depends(get_aggregator),
) -> SnapshotResponse:
    return SnapshotResponse.from_snapshot(aggregator.get_snapshot())


@router.get("/capacity/today", response_model=list[SnapshotResponse])
async def get_today_snapshots(
    aggregator: OccupancyAggregator = Depends(get_aggregator),
) -> list[SnapshotResponse]:
    return [SnapshotResponse.from_snapshot(item) for item in aggregator.current_day_snapshots()]


@router.get("/capacity/history", response_model=list[DailyRecordResponse])
async def get_history(
    window: str = Query(default="7d"),
    aggregator: OccupancyAggregator = Depends(get_aggregator),
) -> list[DailyRecordResponse]:
    try:
        records = aggregator.get_history(window)
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    return [DailyRecordResponse.from_record(record) for record in records]


@router.get("/capacity/forecasts", response_model=list[ForecastResponse])
async def get_forecasts(
    ward_id: Optional[str] = None,
    service: ForecastService = Depends(get_forecast_service),
) -> list[ForecastResponse]:
    """Wards without any sample are omitted rather than reported as errors."""
    try:
        forecasts = service.forecast(ward_id)
        return [ForecastResponse.from_forecast(item) for item in forecasts]
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected forecast failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute forecasts",
        ) from exc


@router.get("/capacity/forecasts/{ward_id}", response_model=ForecastResponse)
async def get_ward_forecast(
    ward_id: str,
    service: ForecastService = Depends(get_forecast_service),
) -> ForecastResponse:
    try:
        return ForecastResponse.from_forecast(service.forecast_one(ward_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.get("/capacity/suggestions", response_model=list[SuggestionResponse])
async def get_suggestions(
    ward_id: Optional[str] = None,
    service: AdvisoryService = Depends(get_advisory_service),
) -> list[SuggestionResponse]:
    try:
        suggestions = service.suggestions(ward_id)
        return [SuggestionResponse.from_suggestion(item) for item in suggestions]
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected advisory failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate suggestions",
        ) from exc


@router.post("/capacity/tick", response_model=TickResponse)
async def run_tick(
    clock: SamplingClock = Depends(get_sampling_clock),
) -> TickResponse:
    """Run one sampling tick immediately, outside the regular cadence."""
    result = clock.tick()
    return TickResponse(
        released_units=[unit.unit_id for unit in result.released_units],
        expired_requests=[request.request_id for request in result.expired_requests],
        snapshot=SnapshotResponse.from_snapshot(result.snapshot),
        closed_day=result.closed_record.record_date if result.closed_record else None,
    )


@router.get("/events", response_model=list[EventResponse])
async def recent_events(
    limit: int = Query(default=50, gt=0, le=200),
    notifier: InMemoryNotifier = Depends(get_notifier),
) -> list[EventResponse]:
    return [EventResponse(**event.to_dict()) for event in notifier.recent(limit)]
