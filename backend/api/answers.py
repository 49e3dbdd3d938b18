"""
Outward service consumed by the HTTP routes.

Reads never raise for "no data yet": absent predictions come back as None,
empty listings as []. Admin operations return TaskResult.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from shared.models.domain import (
    Prediction,
    PredictionStats,
    SchedulerStatus,
    TaskResult,
    VerificationSource,
)
from shared.models.enums import PredictionStatus, TaskName
from shared.utils.logging import get_logger
from scheduler.service import SchedulerService
from verifier.numbering import GameNumbering
from verifier.sources.base import normalize_word
from verifier.store.base import PredictionStore

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnswerService:
    def __init__(
        self,
        store: PredictionStore,
        scheduler: SchedulerService,
        numbering: GameNumbering,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._numbering = numbering
        self._now = now

    @property
    def current_game_number(self) -> int:
        return self._numbering.current_game_number(self._now())

    # ── Reads ───────────────────────────────────────────────────────────

    async def get_today_prediction(self) -> Optional[Prediction]:
        return await self._store.get_by_game_number(self.current_game_number)

    async def get_prediction(self, game_number: int) -> Optional[Prediction]:
        return await self._store.get_by_game_number(game_number)

    async def get_history(self, limit: int = 20) -> list[Prediction]:
        return await self._store.get_verified_history(limit)

    async def get_candidates(self, limit: int = 10) -> list[Prediction]:
        return await self._store.get_candidates(limit)

    async def get_stats(self) -> PredictionStats:
        return await self._store.get_stats()

    async def get_sources(self) -> list[VerificationSource]:
        return await self._store.list_sources()

    def get_scheduler_status(self) -> SchedulerStatus:
        return self._scheduler.get_status()

    def get_task_history(self, limit: int = 20) -> list[TaskResult]:
        return self._scheduler.get_task_history(limit)

    # ── Admin ───────────────────────────────────────────────────────────

    def start_scheduler(self) -> TaskResult:
        started = self._scheduler.start()
        return TaskResult(
            task=TaskName.START_SCHEDULER,
            success=True,
            message="scheduler started" if started else "scheduler already running",
        )

    def stop_scheduler(self) -> TaskResult:
        stopped = self._scheduler.stop()
        return TaskResult(
            task=TaskName.STOP_SCHEDULER,
            success=True,
            message="scheduler stopping" if stopped else "scheduler not running",
        )

    async def run_daily_collection_now(self) -> TaskResult:
        return await self._scheduler.run_daily_collection()

    async def run_hourly_verification_now(self) -> TaskResult:
        return await self._scheduler.run_hourly_verification()

    async def run_historical_backfill(
        self,
        start_game_number: Optional[int] = None,
        end_game_number: Optional[int] = None,
    ) -> TaskResult:
        return await self._scheduler.run_historical_backfill(start_game_number, end_game_number)

    async def verify_game(self, game_number: int) -> TaskResult:
        return await self._scheduler.verify_game(game_number)

    async def update_prediction(
        self,
        game_number: int,
        status: PredictionStatus,
        word: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> Optional[Prediction]:
        """
        Manual override of one prediction. Raises ValueError for an invalid
        word or a verified status without any word; None if the game is unknown.
        """
        normalized = None
        if word is not None:
            normalized = normalize_word(word)
            if normalized is None:
                raise ValueError(f"invalid answer word: {word!r}")
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ValueError("confidence must be between 0 and 1")
        updated = await self._store.update_status(game_number, status, normalized, confidence)
        logger.info(
            "prediction_overridden",
            game_number=game_number,
            status=status.value,
            word=normalized,
            found=updated is not None,
        )
        return updated
