"""
Scheduler service for the answer consensus engine.

A constructible control loop ticking once per tick_interval_s:
- once per UTC day, after the daily cutoff, run the full collection pipeline
  (bounded retries; a rejected placeholder is written when they run out);
- on the first tick of each UTC hour, re-verify today's answer while it is
  not verified, writing only when the outcome changed.
Backfill and single-game verification are exposed as admin operations.
Every operation returns a TaskResult and is kept in a bounded history.
"""
from __future__ import annotations

import asyncio
import time
from collections import deque
from datetime import date, datetime, time as dtime, timezone
from functools import partial
from typing import Awaitable, Callable, Optional

from shared.models.domain import Prediction, SchedulerStatus, TaskResult
from shared.models.enums import PredictionStatus, SchedulerPhase, TaskName
from shared.utils.logging import bind_context, get_logger
from shared.utils.metrics import PIPELINE_DURATION, SCHEDULER_RUNNING, SCHEDULER_TASKS
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.engine import ConsensusVerifier, PipelineError
from verifier.numbering import GameNumbering, utc_date
from verifier.retry import RetryPolicy
from verifier.store.base import PredictionStore

logger = get_logger(__name__)

Outcome = tuple[bool, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SchedulerService:
    def __init__(
        self,
        verifier: ConsensusVerifier,
        store: PredictionStore,
        numbering: GameNumbering,
        settings: Optional[VerifierSettings] = None,
        *,
        now: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._verifier = verifier
        self._store = store
        self._numbering = numbering
        self._settings = settings or get_verifier_settings()
        self._now = now
        self._sleep = sleep

        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._daily_lock = asyncio.Lock()

        self._last_collection_date: Optional[date] = None
        self._last_hourly_slot: Optional[tuple[date, int]] = None
        self._phase = SchedulerPhase.NOT_DUE
        self._history: deque[TaskResult] = deque(maxlen=self._settings.task_history_limit)
        self._total_tasks = 0

        self._retry = RetryPolicy(
            max_retries=self._settings.retry_max_attempts,
            delay_s=self._settings.retry_delay_s,
            sleep=sleep,
        )

    # ── Lifecycle ───────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stop_event.is_set()

    @property
    def last_collection_date(self) -> Optional[date]:
        return self._last_collection_date

    def start(self) -> bool:
        """
        Start the control loop. No-op (returns False) when already running.
        A loop still finishing after stop() is awaited before the new one ticks.
        """
        if self.is_running:
            logger.info("scheduler_already_running")
            return False
        previous = self._task if self._task is not None and not self._task.done() else None
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(self._stop_event, previous), name="answer-scheduler"
        )
        SCHEDULER_RUNNING.set(1)
        logger.info(
            "scheduler_started",
            tick_interval_s=self._settings.tick_interval_s,
            draining_previous=previous is not None,
        )
        return True

    def stop(self) -> bool:
        """
        Halt future ticks and pending retries. Work already in progress
        (including a retry whose delay is elapsing) runs to completion.
        """
        if not self.is_running:
            return False
        self._stop_event.set()
        SCHEDULER_RUNNING.set(0)
        logger.info("scheduler_stop_requested")
        return True

    async def wait_stopped(self, timeout: Optional[float] = None) -> None:
        """Wait for the loop task to finish after stop()."""
        if self._task is None:
            return
        await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    async def _run(self, stop: asyncio.Event, previous: Optional[asyncio.Task[None]]) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        while not stop.is_set():
            try:
                await self.tick()
            except Exception as exc:
                logger.error("scheduler_tick_error", error=str(exc), exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._settings.tick_interval_s)
            except asyncio.TimeoutError:
                pass
        # Admin runs after a stop must not see a stale stop signal.
        if self._stop_event is stop:
            self._stop_event = asyncio.Event()
        logger.info("scheduler_stopped")

    # ── Tick ────────────────────────────────────────────────────────────

    def _cutoff_passed(self, now: datetime) -> bool:
        cutoff = dtime(self._settings.daily_cutoff_hour, self._settings.daily_cutoff_minute)
        return _as_utc(now).time() >= cutoff

    def collection_due(self, now: datetime) -> bool:
        return self._cutoff_passed(now) and self._last_collection_date != utc_date(now)

    def _hour_slot(self, now: datetime) -> tuple[date, int]:
        return utc_date(now), _as_utc(now).hour

    async def tick(self, now: Optional[datetime] = None) -> list[TaskResult]:
        """Run whatever is due at now."""
        now = now or self._now()
        if self.collection_due(now):
            self._phase = SchedulerPhase.DUE_FOR_COLLECTION
            return [await self.run_daily_collection(now)]
        if self._last_collection_date != utc_date(now):
            self._phase = SchedulerPhase.NOT_DUE
            return []
        slot = self._hour_slot(now)
        if slot == self._last_hourly_slot:
            return []
        self._last_hourly_slot = slot
        return [await self.run_hourly_verification(now)]

    # ── Operations ──────────────────────────────────────────────────────

    async def _execute(
        self,
        task: TaskName,
        game_number: Optional[int],
        op: Callable[[], Awaitable[Outcome]],
    ) -> TaskResult:
        start = time.perf_counter()
        try:
            with bind_context(task=task.value, game_number=game_number):
                success, message = await op()
        except Exception as exc:
            logger.error("scheduler_task_error", task=task.value, game_number=game_number, error=str(exc), exc_info=True)
            success, message = False, f"{type(exc).__name__}: {exc}"
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        result = TaskResult(
            task=task,
            success=success,
            game_number=game_number,
            message=message,
            execution_time_ms=elapsed_ms,
        )
        self._history.appendleft(result)
        self._total_tasks += 1
        SCHEDULER_TASKS.labels(task=task.value, success=str(success).lower()).inc()
        PIPELINE_DURATION.labels(task=task.value).observe(elapsed_ms / 1000)
        logger.info(
            "scheduler_task_complete",
            task=task.value,
            game_number=game_number,
            success=success,
            message=message,
            execution_time_ms=elapsed_ms,
        )
        return result

    def _mark_collected(self, now: datetime) -> None:
        self._last_collection_date = utc_date(now)
        self._last_hourly_slot = self._hour_slot(now)

    async def run_daily_collection(self, now: Optional[datetime] = None) -> TaskResult:
        now = now or self._now()
        game_number = self._numbering.game_number_for_date(now)
        return await self._execute(
            TaskName.DAILY_COLLECTION, game_number, partial(self._daily, now, game_number)
        )

    async def _daily(self, now: datetime, game_number: int) -> Outcome:
        async with self._daily_lock:
            existing = await self._store.get_by_game_number(game_number)
            if existing is not None and existing.status == PredictionStatus.VERIFIED:
                self._mark_collected(now)
                self._phase = SchedulerPhase.RESOLVED
                return True, f"#{game_number} already verified ({existing.word}), skipped"

            await self._verifier.reload_sources()
            try:
                result = await self._retry.run(
                    partial(self._verifier.verify, game_number),
                    name="daily_collection",
                    should_stop=self._stop_event.is_set,
                )
            except Exception as exc:
                self._mark_collected(now)
                self._phase = SchedulerPhase.COLLECTED
                logger.error("daily_collection_gave_up", game_number=game_number, error=str(exc))
                return False, await self._give_up(game_number, existing, exc)

            self._mark_collected(now)
            self._phase = (
                SchedulerPhase.RESOLVED
                if result.status == PredictionStatus.VERIFIED
                else SchedulerPhase.COLLECTED
            )
            return True, (
                f"#{game_number} {result.status.value}: {result.consensus_word} "
                f"(confidence {result.confidence:.2f}, sources {','.join(result.contributing_sources)})"
            )

    async def _give_up(self, game_number: int, existing: Optional[Prediction], exc: BaseException) -> str:
        """Leave a deterministic record once retries are exhausted."""
        if existing is not None:
            return f"#{game_number} collection failed, kept existing {existing.status.value}: {exc}"
        try:
            await self._verifier.write_placeholder(game_number, str(exc))
        except Exception as write_exc:
            logger.error("placeholder_write_failed", game_number=game_number, error=str(write_exc))
            return f"#{game_number} collection failed and placeholder write failed: {write_exc}"
        return f"#{game_number} collection failed, rejected placeholder written: {exc}"

    async def run_hourly_verification(self, now: Optional[datetime] = None) -> TaskResult:
        now = now or self._now()
        game_number = self._numbering.game_number_for_date(now)
        return await self._execute(
            TaskName.HOURLY_VERIFICATION, game_number, partial(self._hourly, game_number)
        )

    async def _hourly(self, game_number: int) -> Outcome:
        existing = await self._store.get_by_game_number(game_number)
        if existing is not None and existing.status == PredictionStatus.VERIFIED:
            self._phase = SchedulerPhase.RESOLVED
            return True, f"#{game_number} already verified, nothing to do"

        self._phase = SchedulerPhase.RE_VERIFYING
        try:
            result = await self._verifier.evaluate(game_number)
        except PipelineError as exc:
            return False, str(exc)

        changed = (
            existing is None
            or existing.status != result.status
            or existing.confidence_score != result.confidence
            or existing.predicted_word != result.consensus_word
            or sorted(existing.verification_sources) != sorted(result.contributing_sources)
        )
        if result.status == PredictionStatus.VERIFIED:
            self._phase = SchedulerPhase.RESOLVED
        if not changed:
            return True, f"#{game_number} unchanged ({result.status.value})"
        await self._verifier.persist(result)
        return True, (
            f"#{game_number} updated to {result.status.value}: {result.consensus_word} "
            f"(confidence {result.confidence:.2f})"
        )

    async def run_historical_backfill(
        self,
        start_game_number: Optional[int] = None,
        end_game_number: Optional[int] = None,
    ) -> TaskResult:
        current = self._numbering.current_game_number(self._now())
        start = start_game_number if start_game_number is not None else current - self._settings.backfill_default_days
        end = end_game_number if end_game_number is not None else current - 1
        return await self._execute(
            TaskName.HISTORICAL_BACKFILL, None, partial(self._backfill, start, end)
        )

    async def _backfill(self, start: int, end: int) -> Outcome:
        if start < 1 or end < 1:
            return False, f"invalid range {start}..{end}: game numbers start at 1"
        if start > end:
            return False, f"invalid range {start}..{end}: start is after end"

        processed = verified = skipped = failed = 0
        logger.info("backfill_started", start=start, end=end)
        for game_number in range(start, end + 1):
            existing = await self._store.get_by_game_number(game_number)
            if existing is not None and existing.status == PredictionStatus.VERIFIED:
                skipped += 1
                continue
            try:
                result = await self._retry.run(
                    partial(self._verifier.verify, game_number),
                    name="historical_backfill",
                    should_stop=self._stop_event.is_set,
                )
            except Exception as exc:
                failed += 1
                logger.warning("backfill_game_failed", game_number=game_number, error=str(exc))
                await self._give_up(game_number, existing, exc)
            else:
                processed += 1
                if result.status == PredictionStatus.VERIFIED:
                    verified += 1
            if game_number < end:
                await self._sleep(self._settings.backfill_delay_s)

        message = (
            f"backfill {start}..{end}: processed {processed}, verified {verified}, "
            f"skipped {skipped}, failed {failed}"
        )
        return failed == 0, message

    async def verify_game(self, game_number: int) -> TaskResult:
        """Run the pipeline once for one game number."""
        return await self._execute(TaskName.VERIFY_GAME, game_number, partial(self._verify_one, game_number))

    async def _verify_one(self, game_number: int) -> Outcome:
        if game_number < 1:
            return False, f"invalid game number {game_number}"
        existing = await self._store.get_by_game_number(game_number)
        try:
            result = await self._verifier.verify(game_number)
        except PipelineError as exc:
            return False, await self._give_up(game_number, existing, exc)
        return True, (
            f"#{game_number} {result.status.value}: {result.consensus_word} "
            f"(confidence {result.confidence:.2f})"
        )

    # ── Introspection ───────────────────────────────────────────────────

    def get_task_history(self, limit: int = 20) -> list[TaskResult]:
        """Most recent first."""
        return list(self._history)[:limit]

    def get_status(self) -> SchedulerStatus:
        now = self._now()
        phase = self._phase
        if self._last_collection_date != utc_date(now):
            phase = SchedulerPhase.DUE_FOR_COLLECTION if self._cutoff_passed(now) else SchedulerPhase.NOT_DUE
        return SchedulerStatus(
            is_running=self.is_running,
            phase=phase,
            current_game_number=self._numbering.current_game_number(now),
            last_collection_date=self._last_collection_date,
            last_task=self._history[0] if self._history else None,
            total_tasks=self._total_tasks,
        )
