"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the registry and services, registers routers, and runs startup
initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from wardflow.controllers.alert_controller import router as alert_router
from wardflow.controllers.bed_controller import router as bed_router
from wardflow.controllers.capacity_controller import router as capacity_router
from wardflow.controllers.cleaning_controller import router as cleaning_router
from wardflow.controllers.request_controller import router as request_router
from wardflow.controllers.transfer_request_controller import router as transfer_request_router
from wardflow.domain.registry import BedRegistry
from wardflow.repository.data_repository import DataRepository
from wardflow.services.advisory_service import AdvisoryService
from wardflow.services.aggregation_service import OccupancyAggregator
from wardflow.services.alert_service import AlertService
from wardflow.services.allocation_service import AllocationProtocolService
from wardflow.services.cleaning_service import CleaningQueueService
from wardflow.services.discharge_schedule import RegistryDischargeSchedule
from wardflow.services.forecast_service import ForecastService
from wardflow.services.notification_service import InMemoryNotifier
from wardflow.services.sampling_service import SamplingClock
from wardflow.services.transfer_request_service import TransferRequestService
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service shares one BedRegistry and is published on app.state for
    dependency resolution.
    """
    settings = settings or get_settings()

    # --- Shared state and collaborators ---
    registry = BedRegistry()
    repository = DataRepository(settings)
    notifier = InMemoryNotifier()

    # --- Services ---
    allocation_service = AllocationProtocolService(
        registry=registry,
        repository=repository,
        settings=settings,
        notifier=notifier,
    )
    alert_service = AlertService(repository=repository, settings=settings, notifier=notifier)
    aggregator = OccupancyAggregator(
        registry=registry,
        repository=repository,
        settings=settings,
        notifier=notifier,
        alerts=alert_service,
    )
    cleaning_service = CleaningQueueService(
        allocation_service=allocation_service,
        repository=repository,
        notifier=notifier,
    )
    transfer_request_service = TransferRequestService(
        allocation_service=allocation_service,
        repository=repository,
        settings=settings,
        notifier=notifier,
    )
    forecast_service = ForecastService(
        aggregator=aggregator,
        discharge_schedule=RegistryDischargeSchedule(registry),
        repository=repository,
        settings=settings,
    )
    advisory_service = AdvisoryService(forecast_service=forecast_service, settings=settings)
    sampling_clock = SamplingClock(
        allocation_service=allocation_service,
        aggregator=aggregator,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield
        app.state.sampling_clock.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(bed_router)
    app.include_router(request_router)
    app.include_router(capacity_router)
    app.include_router(transfer_request_router)
    app.include_router(cleaning_router)
    app.include_router(alert_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.registry = registry
    app.state.repository = repository
    app.state.notifier = notifier
    app.state.allocation_service = allocation_service
    app.state.aggregator = aggregator
    app.state.forecast_service = forecast_service
    app.state.advisory_service = advisory_service
    app.state.sampling_clock = sampling_clock
    app.state.alert_service = alert_service
    app.state.cleaning_service = cleaning_service
    app.state.transfer_request_service = transfer_request_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Startup sequence.

    Order matters:
      1. Schema must exist before the registry is hydrated.
      2. The registry is loaded from the store, or provisioned from the
         configured ward layout when the store is empty.
      3. The unfinished day's snapshots are reloaded so the next fold keeps them.
      4. The sampling clock starts last so its first tick sees a full registry.
    """
    repository: DataRepository = app.state.repository
    allocation_service: AllocationProtocolService = app.state.allocation_service
    aggregator: OccupancyAggregator = app.state.aggregator
    sampling_clock: SamplingClock = app.state.sampling_clock

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup: loading bed registry")
    allocation_service.bootstrap()

    logger.info("Startup: restoring open-day snapshots")
    aggregator.restore()

    if settings.sampling_clock_enabled:
        logger.info("Startup: starting sampling clock")
        sampling_clock.start()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
