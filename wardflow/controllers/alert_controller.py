"""HTTP controller layer for persisted occupancy alerts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from wardflow.controllers.dependencies import domain_http_error, get_alert_service
from wardflow.domain.errors import WardFlowError
from wardflow.domain.models import AlertLevel, OccupancyAlert
from wardflow.services.alert_service import AlertService


router = APIRouter(prefix="/alerts", tags=["alerts"])


class AcknowledgeAlert(BaseModel):
    acknowledged_by: str = Field(min_length=1)


class AlertResponse(BaseModel):
    alert_id: str
    level: AlertLevel
    message: str
    created_at: datetime
    ward_id: Optional[str] = None
    occupancy_rate: Optional[float] = None
    acknowledged: bool
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    @classmethod
    def from_alert(cls, alert: OccupancyAlert) -> "AlertResponse":
        return cls(**alert.__dict__)


class AlertSummaryResponse(BaseModel):
    total: int = Field(ge=0)
    unacknowledged: int = Field(ge=0)
    by_level: dict[str, int]
    unacknowledged_by_level: dict[str, int]


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    level: Optional[AlertLevel] = None,
    ward_id: Optional[str] = None,
    acknowledged: Optional[bool] = None,
    limit: int = Query(default=50, gt=0, le=500),
    service: AlertService = Depends(get_alert_service),
) -> list[AlertResponse]:
    alerts = service.list_alerts(level, ward_id, acknowledged, limit)
    return [AlertResponse.from_alert(alert) for alert in alerts]


@router.get("/summary", response_model=AlertSummaryResponse)
async def alert_summary(
    service: AlertService = Depends(get_alert_service),
) -> AlertSummaryResponse:
    return AlertSummaryResponse(**service.summary())


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: str,
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    try:
        return AlertResponse.from_alert(service.get_alert(alert_id))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc


@router.post("/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: str,
    payload: AcknowledgeAlert,
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    try:
        return AlertResponse.from_alert(service.acknowledge(alert_id, payload.acknowledged_by))
    except WardFlowError as exc:
        raise domain_http_error(exc) from exc
