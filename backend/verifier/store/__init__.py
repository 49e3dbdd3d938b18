"""Prediction store implementations and factory."""
from __future__ import annotations

from typing import Optional

from shared.config import Settings, StorageBackend, get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from verifier.retry import RetryPolicy
from verifier.store.base import PredictionStore, StoreError
from verifier.store.local import LocalFilePredictionStore
from verifier.store.sql import SqlPredictionStore

__all__ = [
    "LocalFilePredictionStore",
    "PredictionStore",
    "SqlPredictionStore",
    "StoreError",
    "create_store",
    "open_store",
]

logger = get_logger(__name__)


def create_store(settings: Optional[Settings] = None) -> PredictionStore:
    """Pick the backend from AV_STORAGE_BACKEND. Not started; call start()."""
    settings = settings or get_settings()
    if settings.storage_backend == StorageBackend.LOCAL:
        return LocalFilePredictionStore(settings.local_store_path)
    return SqlPredictionStore(DatabaseManager(settings))


async def open_store(
    settings: Optional[Settings] = None,
    retry: Optional[RetryPolicy] = None,
) -> PredictionStore:
    """
    Create and start the configured store, retrying with exponential backoff.

    When the database stays unreachable and local_store_fallback is on, the
    process runs on the local file store instead. The choice is made here,
    once; nothing switches stores afterwards.
    """
    settings = settings or get_settings()
    store = create_store(settings)
    policy = retry or RetryPolicy(
        max_retries=max(settings.store_connect_attempts - 1, 0),
        delay_s=settings.store_connect_delay_s,
        backoff=RetryPolicy.EXPONENTIAL,
        retry_on=(StoreError,),
    )
    try:
        await policy.run(store.start, name=f"store_start:{store.name}")
    except StoreError as exc:
        if isinstance(store, LocalFilePredictionStore) or not settings.local_store_fallback:
            raise
        logger.error(
            "store_unavailable_using_local",
            store=store.name,
            path=settings.local_store_path,
            error=str(exc),
        )
        store = LocalFilePredictionStore(settings.local_store_path)
        await store.start()
    return store
