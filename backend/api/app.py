"""
FastAPI application for Riftwatch.
Exposes the tracking command surface and runs the poll scheduler in the same
process, so commands and poll cycles share one store and its tenant locks.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import Depends, FastAPI

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server

from api.commands import TrackingCommands
from api.dependencies import get_scheduler, init_dependencies
from api.middleware import setup_middleware
from api.routes.tenants import router as tenants_router
from scheduler.service import PollCycleScheduler, create_runtime

logger = get_logger(__name__)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without upstream services."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: load the registry, open upstream clients, start the scheduler loop.
    Shutdown: stop the loop, let the in-flight cycle unwind, close clients.
    """
    settings = get_settings()
    setup_logging("riftwatch", settings)
    start_metrics_server(settings)

    runtime = await create_runtime(settings)
    commands = TrackingCommands(
        runtime.store, runtime.resolver, runtime.history, runtime.dispatcher
    )
    init_dependencies(commands, runtime.scheduler)

    scheduler_task = asyncio.create_task(runtime.scheduler.run(), name="poll-scheduler")
    logger.info("riftwatch_started", host=settings.api_host, port=settings.api_port)

    yield

    runtime.scheduler.request_shutdown()
    try:
        await scheduler_task
    except asyncio.CancelledError:
        pass
    await runtime.close()
    logger.info("riftwatch_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing."""
    app = FastAPI(
        title="Riftwatch",
        description="Match completion notifier for tracked League of Legends players",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
    )

    setup_middleware(app)
    app.include_router(tenants_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "riftwatch"}

    @app.get("/v1/status", tags=["system"])
    async def status(
        scheduler: Optional[PollCycleScheduler] = Depends(get_scheduler),
    ) -> dict[str, Any]:
        if scheduler is None:
            return {"scheduler": None, "last_cycle": None}
        report = scheduler.last_report
        return {
            "scheduler": scheduler.state.value,
            "last_cycle": report.model_dump(mode="json") if report else None,
        }

    return app


app = create_app()
