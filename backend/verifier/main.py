"""
Engine entrypoint.
Runs the scheduler control loop without the HTTP API; the store backend is
chosen once from configuration at startup.
"""
from __future__ import annotations

import asyncio
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

# Ensure backend root is on path when run as python -m verifier.main
_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server

from scheduler.service import SchedulerService
from verifier.collector import Collector
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.engine import ConsensusVerifier
from verifier.numbering import GameNumbering
from verifier.registry import SourceRegistry, sources_from_seeds
from verifier.store import PredictionStore, open_store

logger = get_logger(__name__)


@dataclass
class Pipeline:
    store: PredictionStore
    numbering: GameNumbering
    registry: SourceRegistry
    collector: Collector
    verifier: ConsensusVerifier
    scheduler: SchedulerService


def build_pipeline(
    store: PredictionStore,
    settings: Optional[VerifierSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Pipeline:
    """Wire numbering, registry, collector, verifier and scheduler around one store."""
    settings = settings or get_verifier_settings()
    numbering = GameNumbering.from_settings(settings)
    registry = SourceRegistry.from_settings(settings, loader=store.list_sources)
    collector = Collector(registry, store, numbering, settings, transport=transport)
    verifier = ConsensusVerifier(collector, registry, store, numbering, settings)
    scheduler = SchedulerService(verifier, store, numbering, settings)
    return Pipeline(store, numbering, registry, collector, verifier, scheduler)


async def prepare(pipeline: Pipeline, settings: Optional[VerifierSettings] = None) -> None:
    """Seed default sources into the started store and load the registry from it."""
    settings = settings or get_verifier_settings()
    await pipeline.store.ensure_sources(sources_from_seeds(settings.sources))
    await pipeline.registry.reload()


async def main() -> None:
    setup_logging("verifier")
    verifier_settings = get_verifier_settings()
    start_metrics_server()

    try:
        pipeline = build_pipeline(await open_store(), verifier_settings)
        await prepare(pipeline, verifier_settings)
    except Exception as e:
        logger.exception("startup_failed", error=str(e))
        raise

    shutdown = asyncio.Event()

    def on_signal() -> None:
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, on_signal)
        except NotImplementedError:
            pass

    pipeline.scheduler.start()
    logger.info("verifier_started", store=pipeline.store.name)
    await shutdown.wait()

    pipeline.scheduler.stop()
    await pipeline.scheduler.wait_stopped()
    await pipeline.store.close()
    logger.info("verifier_stopped")


if __name__ == "__main__":
    asyncio.run(main())
