"""Domain enumerations for the answer consensus engine."""
from __future__ import annotations

from enum import Enum


class PredictionStatus(str, Enum):
    CANDIDATE = "candidate"
    VERIFIED = "verified"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self == PredictionStatus.VERIFIED


class CollectionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class TaskName(str, Enum):
    DAILY_COLLECTION = "daily_collection"
    HOURLY_VERIFICATION = "hourly_verification"
    HISTORICAL_BACKFILL = "historical_backfill"
    VERIFY_GAME = "verify_game"
    START_SCHEDULER = "start_scheduler"
    STOP_SCHEDULER = "stop_scheduler"


class SchedulerPhase(str, Enum):
    """Per-UTC-day scheduler state."""
    NOT_DUE = "not_due"
    DUE_FOR_COLLECTION = "due_for_collection"
    COLLECTED = "collected"
    RE_VERIFYING = "re_verifying"
    RESOLVED = "resolved"
