from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from wardflow.domain.constraints import ForecastConfig
from wardflow.domain.errors import InsufficientForecastData
from wardflow.domain.models import DailyRecord, Trend, UnitSpec, UnitStatus, WardStats
from wardflow.domain.registry import BedRegistry
from wardflow.repository.data_repository import DataRepository
from wardflow.services.aggregation_service import OccupancyAggregator
from wardflow.services.discharge_schedule import RegistryDischargeSchedule, StaticDischargeSchedule
from wardflow.services.forecast_service import (
    ForecastService,
    build_history_frame,
    forecast_ward,
    forecast_wards,
)
from wardflow.utils.config import get_settings


CONFIG = ForecastConfig(smoothing_alpha=0.3, max_history_days=15, live_epsilon=0.1)
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _stats(ward_id: str, occupied: int, total: int, rate: float | None = None) -> WardStats:
    return WardStats(
        ward_id=ward_id,
        total=total,
        available=total - occupied,
        occupied=occupied,
        cleaning=0,
        reserved=0,
        maintenance=0,
        occupancy_rate=rate if rate is not None else round(100 * occupied / total, 2),
    )


def _record(day: date, *wards: WardStats) -> DailyRecord:
    hospital = _stats(None, sum(item.occupied for item in wards), sum(item.total for item in wards))
    return DailyRecord(
        record_date=day,
        timestamp=datetime.combine(day, datetime.min.time(), tzinfo=timezone.utc),
        hospital=hospital,
        wards=tuple(wards),
    )


def _history(ward_id: str, rates: list[float], total: int = 10) -> list[DailyRecord]:
    start = date(2026, 3, 1)
    return [
        _record(start + timedelta(days=index), _stats(ward_id, int(rate * total / 100), total, rate))
        for index, rate in enumerate(rates)
    ]


def test_discharges_lower_single_sample_projection():
    live = {"ICU": _stats("ICU", 18, 20)}

    [forecast] = forecast_wards([], live, {"ICU": 2}, CONFIG)

    assert forecast.current_rate == 90.0
    assert forecast.discharge_adjustment == -10.0
    assert forecast.projected_rate == 80.0
    assert forecast.scheduled_discharges == 2
    assert forecast.trend == Trend.STABLE


def test_two_sample_smoothing_projection():
    history = _history("Cardiology", [60.0, 80.0])
    live = {"Cardiology": _stats("Cardiology", 8, 10, 80.0)}

    [forecast] = forecast_wards(history, live, {}, CONFIG)

    assert forecast.sample_count == 2
    assert forecast.projected_rate == 70.2
    assert forecast.trend == Trend.INCREASING


def test_live_rate_appended_only_beyond_epsilon():
    history = _history("ICU", [50.0, 70.0])

    [unchanged] = forecast_wards(history, {"ICU": _stats("ICU", 7, 10, 70.05)}, {}, CONFIG)
    [moved] = forecast_wards(history, {"ICU": _stats("ICU", 6, 10, 60.0)}, {}, CONFIG)

    assert unchanged.sample_count == 2
    assert moved.sample_count == 3
    assert moved.trend == Trend.DECREASING


def test_single_sample_projection_equals_sample():
    [forecast] = forecast_wards(_history("ICU", [42.5]), {}, {}, CONFIG)

    assert forecast.projected_rate == 42.5
    assert forecast.sample_count == 1


def test_projection_is_clamped_to_bounds():
    live = {"ICU": _stats("ICU", 2, 20)}
    [low] = forecast_wards([], live, {"ICU": 15}, CONFIG)
    [high] = forecast_wards(_history("ER", [100.0, 100.0]), {}, {"ER": -3}, CONFIG)

    assert low.projected_rate == 0.0
    assert high.projected_rate == 100.0


def test_history_is_limited_to_most_recent_days():
    rates = [10.0] * 20 + [90.0]
    frame = build_history_frame(_history("ICU", rates), CONFIG.max_history_days)

    assert len(frame) == 15
    assert list(frame["rate"])[-1] == 90.0


def test_wards_without_samples_are_skipped():
    forecasts = forecast_wards(_history("ICU", [50.0]), {}, {"Cardiology": 1}, CONFIG)

    assert [item.ward_id for item in forecasts] == ["ICU"]
    with pytest.raises(InsufficientForecastData):
        forecast_ward("Cardiology", _history("ICU", [50.0]), {}, {}, CONFIG)


def test_zero_unit_ward_gets_no_adjustment():
    live = {"Empty": _stats("Empty", 0, 0, 0.0)}

    [forecast] = forecast_wards([], live, {"Empty": 3}, CONFIG)

    assert forecast.discharge_adjustment == 0.0
    assert forecast.projected_rate == 0.0


def _build_service(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path / "forecast.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    registry = BedRegistry()
    registry.provision_ward("ICU", [UnitSpec(f"ICU-{index:02d}") for index in range(1, 11)], at=NOW)
    aggregator = OccupancyAggregator(registry=registry, repository=repository, settings=settings)
    service = ForecastService(
        aggregator=aggregator,
        discharge_schedule=RegistryDischargeSchedule(registry),
        repository=repository,
        settings=settings,
        clock=lambda: NOW,
    )
    return service, registry, repository


def test_service_widens_lookback_when_recent_history_is_thin(tmp_path):
    service, _, repository = _build_service(tmp_path)
    for offset, rate in ((20, 30.0), (12, 40.0), (2, 50.0)):
        repository.save_daily_record(
            _record(NOW.date() - timedelta(days=offset), _stats("ICU", int(rate / 10), 10, rate))
        )

    history = service.load_history(NOW.date())

    assert [item.record_date for item in history] == [
        NOW.date() - timedelta(days=20),
        NOW.date() - timedelta(days=12),
        NOW.date() - timedelta(days=2),
    ]


def test_service_uses_registry_departures_for_tomorrow(tmp_path):
    service, registry, _ = _build_service(tmp_path)
    tomorrow = NOW + timedelta(days=1)
    for index in range(1, 6):
        registry.transition(
            f"ICU-{index:02d}",
            UnitStatus.OCCUPIED,
            at=NOW,
            occupant_ref=f"p:{index}",
            expected_departure=tomorrow if index <= 2 else tomorrow + timedelta(days=3),
        )

    [forecast] = service.forecast()

    assert forecast.current_rate == 50.0
    assert forecast.scheduled_discharges == 2
    assert forecast.projected_rate == 30.0
    assert service.forecast("Cardiology") == []
    assert service.forecast_one("ICU") == forecast


def test_static_schedule_ignores_date_bucket():
    schedule = StaticDischargeSchedule({"ICU": 2})

    assert schedule.scheduled_departures_by_ward(date(2026, 1, 1)) == {"ICU": 2}


def test_service_smooths_full_fifteen_day_history(tmp_path):
    service, _, repository = _build_service(tmp_path)
    for offset in range(15, 0, -1):
        rate = 90.0 if offset >= 8 else 20.0
        repository.save_daily_record(
            _record(NOW.date() - timedelta(days=offset), _stats("ICU", int(rate / 10), 10, rate))
        )

    [forecast] = service.forecast()

    assert len(service.load_history(NOW.date())) == 15
    assert forecast.current_rate == 0.0
    assert forecast.sample_count == 16
    assert forecast.projected_rate == 12.6
    assert forecast.trend == Trend.DECREASING
