"""
Pydantic v2 domain models shared across the engine, store and API.
These are the canonical wire/internal representations, not ORM models.
"""
from __future__ import annotations

import datetime as dt
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.models.enums import CollectionStatus, PredictionStatus, SchedulerPhase, TaskName


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Source configuration ────────────────────────────────────────────────
class VerificationSource(DomainModel):
    """One configured answer source. Weight is its vote multiplier in consensus."""
    name: str
    url_template: str
    weight: float = Field(gt=0)
    is_active: bool = True
    success_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    last_check: Optional[datetime] = None


# ── Collection ──────────────────────────────────────────────────────────
class SourceOutcome(DomainModel):
    """Result of one fetch-and-extract attempt against one source."""
    source_name: str
    word: Optional[str] = None
    success: bool = False
    status: CollectionStatus = CollectionStatus.FAILED
    response_time_ms: float = 0.0
    error: Optional[str] = None
    raw_data_ref: Optional[dict[str, Any]] = None


class WeightedOutcome(SourceOutcome):
    weight: float = 0.0


class CollectionLogEntry(DomainModel):
    """Immutable audit row for one (game_number, source, attempt)."""
    game_number: int
    source_name: str
    collected_word: Optional[str] = None
    status: CollectionStatus
    response_time_ms: float = 0.0
    error_message: Optional[str] = None
    raw_data_ref: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_outcome(cls, game_number: int, outcome: SourceOutcome) -> "CollectionLogEntry":
        return cls(
            game_number=game_number,
            source_name=outcome.source_name,
            collected_word=outcome.word,
            status=outcome.status,
            response_time_ms=outcome.response_time_ms,
            error_message=outcome.error,
            raw_data_ref=outcome.raw_data_ref,
        )


# ── Verification ────────────────────────────────────────────────────────
class VerificationResult(DomainModel):
    game_number: int
    sources: list[WeightedOutcome] = Field(default_factory=list)
    consensus_word: Optional[str] = None
    confidence: float = 0.0
    status: PredictionStatus = PredictionStatus.REJECTED
    contributing_sources: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def successful_count(self) -> int:
        return sum(1 for s in self.sources if s.success and s.word)


# ── Prediction ──────────────────────────────────────────────────────────
class Prediction(DomainModel):
    """Current best-known answer for one game number."""
    game_number: int
    date: dt.date
    predicted_word: Optional[str] = None
    verified_word: Optional[str] = None
    status: PredictionStatus = PredictionStatus.CANDIDATE
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    verification_sources: list[str] = Field(default_factory=list)
    hints: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def verified_word_matches_status(self) -> "Prediction":
        """verified_word is present if and only if status is verified."""
        if self.status != PredictionStatus.VERIFIED:
            self.verified_word = None
            return self
        if not self.verified_word:
            if not self.predicted_word:
                raise ValueError("verified prediction requires a word")
            self.verified_word = self.predicted_word
        return self

    @property
    def word(self) -> Optional[str]:
        return self.verified_word or self.predicted_word


class PredictionStats(DomainModel):
    total: int = 0
    verified: int = 0
    candidates: int = 0
    verification_rate: float = 0.0


# ── Scheduler ───────────────────────────────────────────────────────────
class TaskResult(DomainModel):
    task: TaskName
    success: bool
    game_number: Optional[int] = None
    message: str = ""
    execution_time_ms: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)


class SchedulerStatus(DomainModel):
    is_running: bool
    phase: SchedulerPhase = SchedulerPhase.NOT_DUE
    current_game_number: int
    last_collection_date: Optional[dt.date] = None
    last_task: Optional[TaskResult] = None
    total_tasks: int = 0
