"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path


@dataclass(frozen=True)
class WardLayout:
    """Provisioning entry for one ward used when the store is empty."""

    ward_id: str
    capacity: int
    equipment_tag: str = "Standard"


DEFAULT_WARD_LAYOUT: tuple[WardLayout, ...] = (
    WardLayout("Emergency", 15, "Standard"),
    WardLayout("ICU", 15, "ICU Monitor"),
    WardLayout("Cardiology", 15, "Cardiac Monitor"),
    WardLayout("General Ward", 15, "Standard"),
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_ward_layout(raw: str) -> tuple[WardLayout, ...]:
    """Parse ``Ward:count[:Equipment]`` entries separated by commas."""
    layout: list[WardLayout] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [part.strip() for part in chunk.split(":")]
        if len(parts) not in (2, 3) or not parts[0]:
            raise ValueError(f"Invalid ward layout entry: {chunk!r}")
        capacity = int(parts[1])
        if capacity <= 0:
            raise ValueError(f"Ward capacity must be > 0: {chunk!r}")
        equipment = parts[2] if len(parts) == 3 and parts[2] else "Standard"
        layout.append(WardLayout(parts[0], capacity, equipment))
    return tuple(layout)


@dataclass(frozen=True)
class Settings:
    app_name: str = "WardFlow Capacity Core"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    database_path: Path = Path("data/wardflow.db")

    ward_layout: tuple[WardLayout, ...] = field(default=DEFAULT_WARD_LAYOUT)

    cleaning_dwell_minutes: int = 30
    reservation_ttl_hours: int = 2
    reservation_auto_expire: bool = True
    default_eta_minutes: int = 30

    sampling_interval_seconds: int = 3600
    sampling_clock_enabled: bool = True

    forecast_smoothing_alpha: float = 0.3
    forecast_max_history_days: int = 15
    forecast_extended_lookback_days: int = 30
    forecast_min_samples: int = 3
    forecast_live_epsilon: float = 0.1

    advisory_critical_threshold: float = 90.0
    advisory_warning_threshold: float = 80.0
    advisory_low_threshold: float = 60.0

    alert_warning_threshold: float = 80.0
    alert_critical_threshold: float = 90.0
    alert_emergency_threshold: float = 95.0
    peak_hour_threshold: float = 85.0

    recommendation_limit: int = 3

    transfer_blocked_destinations: tuple[str, ...] = ("Emergency",)
    transfer_request_list_limit: int = 50


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    defaults = Settings()
    raw_layout = os.getenv("WARDFLOW_WARD_LAYOUT")
    return Settings(
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        database_path=Path(os.getenv("WARDFLOW_DATABASE_PATH", str(defaults.database_path))),
        ward_layout=parse_ward_layout(raw_layout) if raw_layout else defaults.ward_layout,
        cleaning_dwell_minutes=_env_int(
            "WARDFLOW_CLEANING_DWELL_MINUTES", defaults.cleaning_dwell_minutes
        ),
        reservation_ttl_hours=_env_int(
            "WARDFLOW_RESERVATION_TTL_HOURS", defaults.reservation_ttl_hours
        ),
        reservation_auto_expire=_env_bool(
            "WARDFLOW_RESERVATION_AUTO_EXPIRE", defaults.reservation_auto_expire
        ),
        sampling_interval_seconds=_env_int(
            "WARDFLOW_SAMPLING_INTERVAL_SECONDS", defaults.sampling_interval_seconds
        ),
        sampling_clock_enabled=_env_bool(
            "WARDFLOW_SAMPLING_CLOCK_ENABLED", defaults.sampling_clock_enabled
        ),
        transfer_blocked_destinations=_env_list(
            "WARDFLOW_TRANSFER_BLOCKED_DESTINATIONS", defaults.transfer_blocked_destinations
        ),
    )
