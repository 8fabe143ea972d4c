"""
HTTP endpoint for the server monitor.

This module builds the FastAPI application that serves the statistics of the
MetricStore as JSON from a single path. Before answering, the endpoint asks
the update checker whether the deployment was updated; when it was, one
sample cycle runs first so the response reflects the new code.

The scheduler is started and stopped by the application lifespan, so a
graceful server shutdown always flushes the snapshot file.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from server_monitor import __version__
from server_monitor.logging import get_logger

if TYPE_CHECKING:
    from server_monitor.config import AppConfig
    from server_monitor.metrics.scheduler import SampleScheduler
    from server_monitor.metrics.store import MetricStore
    from server_monitor.updates.git_checker import GitUpdateChecker

logger = get_logger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}


def create_app(
    config: AppConfig,
    store: MetricStore,
    scheduler: SampleScheduler,
    checker: GitUpdateChecker,
    *,
    manage_scheduler: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Application configuration (endpoint path).
        store: Store whose statistics are served.
        scheduler: Scheduler used for the startup/shutdown cycle and for
            ad hoc cycles after an update.
        checker: Update checker consulted on every request.
        manage_scheduler: Start and stop the scheduler with the app lifespan.

    Returns:
        The configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if manage_scheduler:
            await scheduler.start()
        logger.info(
            "Server monitor started",
            extra={"path": config.server.path, "port": config.server.port},
        )
        try:
            yield
        finally:
            if manage_scheduler:
                await scheduler.stop()
            checker.close()
            logger.info("Server monitor stopped")

    app = FastAPI(
        title="Server Monitor",
        description="Rolling CPU, RAM and disk statistics of this host.",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.checker = checker

    async def server_monitor() -> JSONResponse:
        updated = await checker.check_and_update()
        if updated:
            logger.info("Deployment updated, sampling before responding")
            await scheduler.run_cycle()

        return JSONResponse(
            content=store.statistics().to_dict(),
            headers=NO_CACHE_HEADERS,
        )

    app.add_api_route(
        config.server.path,
        server_monitor,
        methods=ALL_METHODS,
        tags=["metrics"],
        summary="Rolling host statistics",
    )

    return app
