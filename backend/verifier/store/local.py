"""
Single-file JSON store for development and tests.

Each mutation is written to disk first (temp file + os.replace) and adopted
in memory only once the write succeeded, so a failed write changes nothing.
Writes are serialized with an asyncio.Lock; reads return copies.
"""
from __future__ import annotations

import asyncio
import json
import os
from collections import Counter
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from shared.models.domain import (
    CollectionLogEntry,
    Prediction,
    PredictionStats,
    VerificationSource,
)
from shared.models.enums import PredictionStatus
from shared.utils.logging import get_logger
from verifier.store.base import (
    PredictionStore,
    StoreError,
    apply_status_update,
    compute_stats,
    rolling_rate,
)

logger = get_logger(__name__)


class LocalFilePredictionStore(PredictionStore):
    name = "local"

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._predictions: dict[int, Prediction] = {}
        self._logs: list[CollectionLogEntry] = []
        self._sources: dict[str, VerificationSource] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    # ── Lifecycle ───────────────────────────────────────────────────────
    async def start(self) -> None:
        async with self._lock:
            self._load()
        logger.info(
            "local_store_loaded",
            path=str(self._path),
            predictions=len(self._predictions),
            sources=len(self._sources),
        )

    async def close(self) -> None:
        logger.info("local_store_closed", path=str(self._path))

    async def ping(self) -> bool:
        try:
            self._ensure_loaded()
        except StoreError as exc:
            logger.warning("local_store_unreadable", path=str(self._path), error=str(exc))
            return False
        return True

    def _load(self) -> None:
        if self._loaded:
            return
        if not self._path.exists():
            self._loaded = True
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
            self._predictions = {
                p.game_number: p
                for p in (Prediction.model_validate(item) for item in raw.get("predictions", []))
            }
            self._logs = [CollectionLogEntry.model_validate(item) for item in raw.get("collection_logs", [])]
            self._sources = {
                s.name: s
                for s in (VerificationSource.model_validate(item) for item in raw.get("verification_sources", []))
            }
        except (OSError, ValueError, ValidationError) as exc:
            raise StoreError(f"cannot load {self._path}: {exc}") from exc
        self._loaded = True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._load()

    def _commit(
        self,
        *,
        predictions: Optional[dict[int, Prediction]] = None,
        logs: Optional[list[CollectionLogEntry]] = None,
        sources: Optional[dict[str, VerificationSource]] = None,
    ) -> None:
        """
        Write the next state to disk, then adopt it in memory. A failed write
        raises StoreError and leaves the in-memory state untouched.
        """
        predictions = self._predictions if predictions is None else predictions
        logs = self._logs if logs is None else logs
        sources = self._sources if sources is None else sources
        document: dict[str, Any] = {
            "predictions": [
                p.model_dump(mode="json")
                for p in sorted(predictions.values(), key=lambda p: p.game_number)
            ],
            "collection_logs": [e.model_dump(mode="json") for e in logs],
            "verification_sources": [s.model_dump(mode="json") for s in sources.values()],
        }
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(document, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            raise StoreError(f"cannot write {self._path}: {exc}") from exc
        self._predictions, self._logs, self._sources = predictions, logs, sources

    # ── Predictions ─────────────────────────────────────────────────────
    async def get_by_game_number(self, game_number: int) -> Optional[Prediction]:
        self._ensure_loaded()
        found = self._predictions.get(game_number)
        return found.model_copy(deep=True) if found else None

    async def get_by_date(self, day: date) -> Optional[Prediction]:
        self._ensure_loaded()
        for p in self._predictions.values():
            if p.date == day:
                return p.model_copy(deep=True)
        return None

    async def get_latest_verified(self) -> Optional[Prediction]:
        self._ensure_loaded()
        verified = [p for p in self._predictions.values() if p.status == PredictionStatus.VERIFIED]
        if not verified:
            return None
        return max(verified, key=lambda p: p.game_number).model_copy(deep=True)

    async def get_candidates(self, limit: int = 10) -> list[Prediction]:
        self._ensure_loaded()
        rows = sorted(
            (p for p in self._predictions.values() if p.status == PredictionStatus.CANDIDATE),
            key=lambda p: p.date,
        )
        return [p.model_copy(deep=True) for p in rows[:limit]]

    async def get_verified_history(self, limit: int = 20) -> list[Prediction]:
        self._ensure_loaded()
        rows = sorted(
            (p for p in self._predictions.values() if p.status == PredictionStatus.VERIFIED),
            key=lambda p: p.game_number,
            reverse=True,
        )
        return [p.model_copy(deep=True) for p in rows[:limit]]

    async def upsert(self, prediction: Prediction) -> Prediction:
        async with self._lock:
            self._ensure_loaded()
            existing = self._predictions.get(prediction.game_number)
            stored = prediction.model_copy(
                deep=True,
                update={
                    "created_at": existing.created_at if existing else prediction.created_at,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
            self._commit(predictions={**self._predictions, stored.game_number: stored})
        return stored.model_copy(deep=True)

    async def update_status(
        self,
        game_number: int,
        status: PredictionStatus,
        word: Optional[str] = None,
        confidence: Optional[float] = None,
        sources: Optional[list[str]] = None,
    ) -> Optional[Prediction]:
        async with self._lock:
            self._ensure_loaded()
            existing = self._predictions.get(game_number)
            if existing is None:
                return None
            updated = apply_status_update(existing, status, word, confidence, sources)
            self._commit(predictions={**self._predictions, game_number: updated})
        return updated.model_copy(deep=True)

    async def get_stats(self) -> PredictionStats:
        self._ensure_loaded()
        return compute_stats(Counter(p.status.value for p in self._predictions.values()))

    # ── Collection log ──────────────────────────────────────────────────
    async def log_collections(self, entries: list[CollectionLogEntry]) -> None:
        if not entries:
            return
        async with self._lock:
            self._ensure_loaded()
            self._commit(logs=[*self._logs, *(e.model_copy(deep=True) for e in entries)])

    async def get_collection_logs(self, game_number: int) -> list[CollectionLogEntry]:
        self._ensure_loaded()
        return [e.model_copy(deep=True) for e in self._logs if e.game_number == game_number]

    # ── Source config ───────────────────────────────────────────────────
    async def list_sources(self, active_only: bool = False) -> list[VerificationSource]:
        self._ensure_loaded()
        return [
            s.model_copy(deep=True)
            for s in self._sources.values()
            if s.is_active or not active_only
        ]

    async def ensure_sources(self, sources: list[VerificationSource]) -> int:
        async with self._lock:
            self._ensure_loaded()
            merged = dict(self._sources)
            for source in sources:
                merged.setdefault(source.name, source.model_copy(deep=True))
            added = len(merged) - len(self._sources)
            if added:
                self._commit(sources=merged)
        return added

    async def record_source_result(self, name: str, success: bool, alpha: float = 0.1) -> None:
        async with self._lock:
            self._ensure_loaded()
            source = self._sources.get(name)
            if source is None:
                return
            updated = source.model_copy(update={
                "success_rate": rolling_rate(source.success_rate, success, alpha),
                "last_check": datetime.now(timezone.utc),
            })
            self._commit(sources={**self._sources, name: updated})
