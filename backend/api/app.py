"""
FastAPI application factory for the answer consensus API.

Creates the app with:
- Prediction read routes and admin routes
- Middleware stack
- Health check endpoints
- Lifespan management: store selection and startup, source seeding,
  optional scheduler autostart, graceful shutdown
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from verifier.config import get_verifier_settings
from verifier.main import build_pipeline, prepare
from verifier.store import open_store

from api.answers import AnswerService
from api.dependencies import get_store, init_dependencies, reset_dependencies
from api.middleware import setup_middleware
from api.routes.admin import router as admin_router
from api.routes.predictions import router as predictions_router

logger = get_logger(__name__)

_SCHEDULER_DRAIN_TIMEOUT_S = 30.0


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing; call init_dependencies yourself."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Opens the store once (database, or the local file store when it stays
    unreachable), seeds sources, wires the pipeline and optionally
    starts the scheduler; on shutdown stops it and closes the store.
    """
    settings = get_settings()
    verifier_settings = get_verifier_settings()
    setup_logging("api")
    start_metrics_server()

    store = await open_store(settings)
    pipeline = build_pipeline(store, verifier_settings)
    await prepare(pipeline, verifier_settings)

    init_dependencies(AnswerService(store, pipeline.scheduler, pipeline.numbering), store)

    if settings.scheduler_autostart:
        pipeline.scheduler.start()

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        store=store.name,
        scheduler=pipeline.scheduler.is_running,
    )

    yield

    # Shutdown
    if pipeline.scheduler.stop():
        try:
            await pipeline.scheduler.wait_stopped(timeout=_SCHEDULER_DRAIN_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning("scheduler_drain_timeout", timeout_s=_SCHEDULER_DRAIN_TIMEOUT_S)
    await store.close()
    reset_dependencies()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing."""
    app = FastAPI(
        title="Answer Consensus API",
        description="Daily answer collection and multi-source verification",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware
    setup_middleware(app)

    # REST routes
    app.include_router(predictions_router)
    app.include_router(admin_router)

    # Health check
    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> dict[str, Any]:
        """Readiness probe: checks the prediction store."""
        try:
            store = get_store()
        except RuntimeError:
            return {"status": "degraded", "store": None, "store_ok": False}
        store_ok = await store.ping()
        return {
            "status": "ok" if store_ok else "degraded",
            "store": store.name,
            "store_ok": store_ok,
        }

    return app


app = create_app()
