"""
Prediction store contract.

One Prediction per game number (upsert keyed by game_number), an append-only
collection log, and the verification source config table. Implementations
must make upsert atomic per key; reads are point-in-time snapshots.
"""
from __future__ import annotations

import abc
from datetime import date, datetime, timezone
from typing import Mapping, Optional

from shared.models.domain import (
    CollectionLogEntry,
    Prediction,
    PredictionStats,
    VerificationSource,
)
from shared.models.enums import PredictionStatus


class StoreError(Exception):
    """Raised when the backing storage cannot complete a read or write."""


def apply_status_update(
    existing: Prediction,
    status: PredictionStatus,
    word: Optional[str] = None,
    confidence: Optional[float] = None,
    sources: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> Prediction:
    """Return a copy of existing with the status change applied."""
    predicted = word or existing.predicted_word
    verified = None
    if status == PredictionStatus.VERIFIED:
        verified = word or existing.verified_word or existing.predicted_word
    return Prediction(
        game_number=existing.game_number,
        date=existing.date,
        predicted_word=predicted,
        verified_word=verified,
        status=status,
        confidence_score=existing.confidence_score if confidence is None else confidence,
        verification_sources=existing.verification_sources if sources is None else list(sources),
        hints=existing.hints,
        created_at=existing.created_at,
        updated_at=now or datetime.now(timezone.utc),
    )


def compute_stats(counts: Mapping[str, int]) -> PredictionStats:
    """Build stats from a status -> row count mapping."""
    total = sum(counts.values())
    verified = counts.get(PredictionStatus.VERIFIED.value, 0)
    candidates = counts.get(PredictionStatus.CANDIDATE.value, 0)
    return PredictionStats(
        total=total,
        verified=verified,
        candidates=candidates,
        verification_rate=(verified / total) if total else 0.0,
    )


def rolling_rate(previous: float, success: bool, alpha: float) -> float:
    """Exponential moving average of source success."""
    sample = 1.0 if success else 0.0
    return max(0.0, min(1.0, (1 - alpha) * previous + alpha * sample))


class PredictionStore(abc.ABC):
    """Storage-agnostic contract used by the verifier, scheduler and API."""

    name: str = "abstract"

    async def start(self) -> None:
        """Open connections / load state."""

    async def close(self) -> None:
        """Release connections / flush state."""

    async def ping(self) -> bool:
        return True

    # ── Predictions ─────────────────────────────────────────────────────
    @abc.abstractmethod
    async def get_by_game_number(self, game_number: int) -> Optional[Prediction]:
        ...

    @abc.abstractmethod
    async def get_by_date(self, day: date) -> Optional[Prediction]:
        ...

    @abc.abstractmethod
    async def get_latest_verified(self) -> Optional[Prediction]:
        """Verified prediction with the highest game number."""
        ...

    @abc.abstractmethod
    async def get_candidates(self, limit: int = 10) -> list[Prediction]:
        """status=candidate, ascending date."""
        ...

    @abc.abstractmethod
    async def get_verified_history(self, limit: int = 20) -> list[Prediction]:
        """status=verified, descending game number."""
        ...

    @abc.abstractmethod
    async def upsert(self, prediction: Prediction) -> Prediction:
        """
        Insert or replace the row for prediction.game_number.
        created_at of an existing row is preserved; updated_at is refreshed.
        """
        ...

    @abc.abstractmethod
    async def update_status(
        self,
        game_number: int,
        status: PredictionStatus,
        word: Optional[str] = None,
        confidence: Optional[float] = None,
        sources: Optional[list[str]] = None,
    ) -> Optional[Prediction]:
        """Change status (and optionally word/confidence/sources). None if no row exists."""
        ...

    @abc.abstractmethod
    async def get_stats(self) -> PredictionStats:
        ...

    # ── Collection log ──────────────────────────────────────────────────
    @abc.abstractmethod
    async def log_collections(self, entries: list[CollectionLogEntry]) -> None:
        """Append entries; existing entries are never modified."""
        ...

    @abc.abstractmethod
    async def get_collection_logs(self, game_number: int) -> list[CollectionLogEntry]:
        ...

    # ── Source config ───────────────────────────────────────────────────
    @abc.abstractmethod
    async def list_sources(self, active_only: bool = False) -> list[VerificationSource]:
        ...

    @abc.abstractmethod
    async def ensure_sources(self, sources: list[VerificationSource]) -> int:
        """Insert sources whose name is unknown; returns how many were added."""
        ...

    @abc.abstractmethod
    async def record_source_result(self, name: str, success: bool, alpha: float = 0.1) -> None:
        """Fold one attempt into the source's rolling success rate and last_check."""
        ...
