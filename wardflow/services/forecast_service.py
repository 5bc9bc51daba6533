"""Next-day occupancy projection per ward via exponential smoothing."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from wardflow.domain.constraints import ForecastConfig, validate_forecast_config
from wardflow.domain.errors import InsufficientForecastData
from wardflow.domain.models import DailyRecord, Trend, WardForecast, WardStats
from wardflow.repository.data_repository import DataRepository
from wardflow.services.aggregation_service import OccupancyAggregator
from wardflow.services.discharge_schedule import DischargeScheduleProvider
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


def forecast_config_from_settings(settings: Settings) -> ForecastConfig:
    return ForecastConfig(
        smoothing_alpha=settings.forecast_smoothing_alpha,
        max_history_days=settings.forecast_max_history_days,
        live_epsilon=settings.forecast_live_epsilon,
    )


def build_history_frame(history: Sequence[DailyRecord], max_history_days: int) -> pd.DataFrame:
    """Long frame of (record_date, ward_id, rate, total), newest N days per ward."""
    frame = pd.DataFrame(
        [
            {
                "record_date": record.record_date,
                "ward_id": stats.ward_id,
                "rate": stats.occupancy_rate,
                "total": stats.total,
            }
            for record in history
            for stats in record.wards
        ],
        columns=["record_date", "ward_id", "rate", "total"],
    )
    if frame.empty:
        return frame
    frame = frame.sort_values(by=["ward_id", "record_date"], kind="mergesort")
    return frame.groupby("ward_id", sort=False).tail(max_history_days)


def smooth(samples: Sequence[float], alpha: float) -> float:
    forecast = samples[0]
    for sample in samples[1:]:
        forecast = alpha * sample + (1 - alpha) * forecast
    return forecast


def classify_trend(samples: Sequence[float]) -> Trend:
    if len(samples) < 2 or samples[-1] == samples[-2]:
        return Trend.STABLE
    return Trend.INCREASING if samples[-1] > samples[-2] else Trend.DECREASING


def forecast_wards(
    history: Sequence[DailyRecord],
    live: Mapping[str, WardStats],
    scheduled_discharges: Mapping[str, int],
    config: ForecastConfig,
) -> list[WardForecast]:
    """Project each ward's next-day occupancy rate.

    The live rate is appended to the history when it differs from the last
    recorded day by more than ``live_epsilon``. Wards with neither history nor
    a live rate produce no forecast.
    """
    validate_forecast_config(config)
    frame = build_history_frame(history, config.max_history_days)
    grouped = {
        ward_id: group
        for ward_id, group in (frame.groupby("ward_id", sort=True) if not frame.empty else [])
    }

    forecasts: list[WardForecast] = []
    for ward_id in sorted(set(grouped) | set(live)):
        group = grouped.get(ward_id)
        samples = [float(value) for value in group["rate"]] if group is not None else []
        live_stats = live.get(ward_id)
        if live_stats is not None and (
            not samples or abs(live_stats.occupancy_rate - samples[-1]) > config.live_epsilon
        ):
            samples.append(float(live_stats.occupancy_rate))
        if not samples:
            continue

        current_rate = float(live_stats.occupancy_rate) if live_stats is not None else samples[-1]
        if len(samples) == 1:
            projection = samples[0]
        else:
            projection = (
                config.smoothing_alpha * current_rate
                + (1 - config.smoothing_alpha) * smooth(samples, config.smoothing_alpha)
            )

        if live_stats is not None:
            total = live_stats.total
        else:
            total = int(group["total"].iloc[-1])
        discharges = int(scheduled_discharges.get(ward_id, 0))
        adjustment = -(discharges / total) * 100 if total > 0 else 0.0

        forecasts.append(
            WardForecast(
                ward_id=ward_id,
                current_rate=round(current_rate, 2),
                projected_rate=round(float(np.clip(projection + adjustment, 0.0, 100.0)), 1),
                trend=classify_trend(samples),
                scheduled_discharges=discharges,
                discharge_adjustment=round(adjustment, 2),
                sample_count=len(samples),
            )
        )
    return forecasts


def forecast_ward(
    ward_id: str,
    history: Sequence[DailyRecord],
    live: Mapping[str, WardStats],
    scheduled_discharges: Mapping[str, int],
    config: ForecastConfig,
) -> WardForecast:
    """Single-ward variant that raises instead of skipping an empty ward."""
    for forecast in forecast_wards(
        history,
        {ward_id: live[ward_id]} if ward_id in live else {},
        scheduled_discharges,
        config,
    ):
        if forecast.ward_id == ward_id:
            return forecast
    raise InsufficientForecastData(ward_id)


class ForecastService:
    """Gathers history, live rates and the discharge schedule for the engine."""

    def __init__(
        self,
        aggregator: OccupancyAggregator,
        discharge_schedule: DischargeScheduleProvider,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._aggregator = aggregator
        self._discharge_schedule = discharge_schedule
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._config = forecast_config_from_settings(self._settings)
        validate_forecast_config(self._config)

    def load_history(self, today: date) -> list[DailyRecord]:
        """Read the last ``forecast_max_history_days`` days, widening when too few are stored."""
        if self._repository is None:
            return []
        history = self._repository.list_daily_records(
            since=today - timedelta(days=self._settings.forecast_max_history_days),
            until=today,
        )
        if len(history) < self._settings.forecast_min_samples:
            history = self._repository.list_daily_records(
                since=today - timedelta(days=self._settings.forecast_extended_lookback_days),
                until=today,
            )
            logger.info(
                "Forecast lookback widened | %s",
                format_fields(
                    days=self._settings.forecast_extended_lookback_days,
                    records=len(history),
                ),
            )
        return history

    def _inputs(self) -> tuple[list[DailyRecord], dict[str, WardStats], Mapping[str, int]]:
        now = self._clock()
        snapshot = self._aggregator.compute_snapshot(now)
        live = {stats.ward_id: stats for stats in snapshot.wards if stats.ward_id is not None}
        tomorrow = now.date() + timedelta(days=1)
        departures = self._discharge_schedule.scheduled_departures_by_ward(tomorrow)
        return self.load_history(now.date()), live, departures

    def forecast(self, ward_filter: Optional[str] = None) -> list[WardForecast]:
        history, live, departures = self._inputs()
        forecasts = forecast_wards(history, live, departures, self._config)
        if ward_filter is not None:
            forecasts = [item for item in forecasts if item.ward_id == ward_filter]
        logger.info(
            "Forecasts computed | %s",
            format_fields(wards=len(forecasts), history_days=len(history)),
        )
        return forecasts

    def forecast_one(self, ward_id: str) -> WardForecast:
        history, live, departures = self._inputs()
        return forecast_ward(ward_id, history, live, departures, self._config)
