"""Scheduler control loop: daily/hourly cadence, retries, backfill, lifecycle."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from scheduler.service import SchedulerService
from shared.models.domain import Prediction
from shared.models.enums import PredictionStatus, SchedulerPhase, TaskName
from verifier.collector import Collector
from verifier.config import VerifierSettings
from verifier.engine import ConsensusVerifier
from verifier.numbering import GameNumbering
from verifier.registry import SourceRegistry
from verifier.store.local import LocalFilePredictionStore


def at(hour: int, minute: int = 0, day: int = 8) -> datetime:
    return datetime(2025, 8, day, hour, minute, tzinfo=timezone.utc)


def make_scheduler(
    settings: VerifierSettings,
    registry: SourceRegistry,
    numbering: GameNumbering,
    store: LocalFilePredictionStore,
    transport: httpx.AsyncBaseTransport,
    now: Callable[[], datetime],
    sleep: Optional[AsyncMock] = None,
) -> SchedulerService:
    collector = Collector(registry, store, numbering, settings, transport=transport)
    verifier = ConsensusVerifier(collector, registry, store, numbering, settings)
    return SchedulerService(verifier, store, numbering, settings, now=now, sleep=sleep or AsyncMock())


# ── Daily cadence ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_nothing_runs_before_cutoff(settings, registry, numbering, store, fixed_now, transport_for) -> None:
    scheduler = make_scheduler(settings, registry, numbering, store, transport_for({}), fixed_now)
    assert await scheduler.tick(at(0, 0)) == []
    assert scheduler.get_task_history() == []


@pytest.mark.asyncio
async def test_daily_collection_runs_once_per_day(
    settings, registry, numbering, store, fixed_now, page, transport_for
) -> None:
    transport = transport_for({
        "tomsguide.test": page("GROAN"),
        "techradar.test": page("GROAN"),
        "wordtips.test": page("STORK"),
    })
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now)

    first = await scheduler.tick(at(0, 5))
    second = await scheduler.tick(at(0, 6))

    assert [r.task for r in first] == [TaskName.DAILY_COLLECTION]
    assert first[0].success and first[0].game_number == 1511
    assert second == []
    assert scheduler.last_collection_date == at(0, 5).date()
    stored = await store.get_by_game_number(1511)
    assert stored is not None and stored.status == PredictionStatus.VERIFIED

    # Next day collects the next game number.
    tomorrow = await scheduler.tick(at(0, 2, day=9))
    assert tomorrow[0].task == TaskName.DAILY_COLLECTION
    assert tomorrow[0].game_number == 1512


@pytest.mark.asyncio
async def test_daily_skips_already_verified(settings, registry, numbering, store, fixed_now, transport_for) -> None:
    await store.upsert(Prediction(
        game_number=1511, date=at(0).date(), predicted_word="GROAN",
        status=PredictionStatus.VERIFIED, confidence_score=0.9,
    ))
    transport = transport_for({})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now)

    result = await scheduler.run_daily_collection(at(0, 5))

    assert result.success
    assert "already verified" in result.message
    assert await store.get_collection_logs(1511) == []
    assert scheduler.get_status().phase == SchedulerPhase.RESOLVED


@pytest.mark.asyncio
async def test_total_failure_retries_then_writes_placeholder(
    settings, registry, numbering, store, fixed_now, transport_for
) -> None:
    sleep = AsyncMock()
    transport = transport_for({"tomsguide.test": 500, "techradar.test": 500, "wordtips.test": 500})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now, sleep)

    result = await scheduler.run_daily_collection(at(0, 5))

    assert not result.success
    assert "placeholder" in result.message
    # 1 attempt + 3 retries, 3 sources each
    assert len(await store.get_collection_logs(1511)) == 12
    assert sleep.await_count == 3
    placeholder = await store.get_by_game_number(1511)
    assert placeholder is not None
    assert placeholder.status == PredictionStatus.REJECTED
    assert placeholder.hints is not None and placeholder.hints["category"] == "collection_failed"
    # The day counts as handled; the next tick must not collect again.
    assert await scheduler.tick(at(0, 6)) == []


@pytest.mark.asyncio
async def test_total_failure_keeps_existing_row(settings, registry, numbering, store, fixed_now, transport_for) -> None:
    await store.upsert(Prediction(
        game_number=1511, date=at(0).date(), predicted_word="CRISP",
        status=PredictionStatus.CANDIDATE, confidence_score=0.6,
    ))
    transport = transport_for({"tomsguide.test": 500, "techradar.test": 500, "wordtips.test": 500})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now)

    result = await scheduler.run_daily_collection(at(0, 5))

    assert not result.success
    assert "kept existing candidate" in result.message
    kept = await store.get_by_game_number(1511)
    assert kept is not None
    assert kept.status == PredictionStatus.CANDIDATE
    assert kept.predicted_word == "CRISP"


# ── Hourly re-verification ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_hourly_reverifies_until_verified(
    settings, registry, numbering, store, fixed_now, page, transport_for
) -> None:
    replies = {"tomsguide.test": page("CRISP"), "techradar.test": 503, "wordtips.test": 503}
    scheduler = make_scheduler(settings, registry, numbering, store, transport_for(replies), fixed_now)

    await scheduler.tick(at(0, 5))
    candidate = await store.get_by_game_number(1511)
    assert candidate is not None and candidate.status == PredictionStatus.CANDIDATE

    # Same hour as the collection: nothing to do.
    assert await scheduler.tick(at(0, 30)) == []

    unchanged = await scheduler.tick(at(1, 0))
    assert unchanged[0].task == TaskName.HOURLY_VERIFICATION
    assert "unchanged" in unchanged[0].message
    again = await store.get_by_game_number(1511)
    assert again is not None and again.updated_at == candidate.updated_at

    # Only once per hour slot.
    assert await scheduler.tick(at(1, 45)) == []

    replies["techradar.test"] = page("CRISP")
    upgraded = await scheduler.tick(at(2, 0))
    assert "updated to verified" in upgraded[0].message
    verified = await store.get_by_game_number(1511)
    assert verified is not None and verified.verified_word == "CRISP"

    done = await scheduler.tick(at(3, 0))
    assert "already verified" in done[0].message
    assert scheduler.get_status().phase == SchedulerPhase.RESOLVED


@pytest.mark.asyncio
async def test_hourly_failure_is_reported(settings, registry, numbering, store, fixed_now, transport_for) -> None:
    transport = transport_for({"tomsguide.test": 500, "techradar.test": 500, "wordtips.test": 500})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now)

    result = await scheduler.run_hourly_verification(at(4))

    assert not result.success
    assert "sources failed" in result.message
    assert await store.get_by_game_number(1511) is None


@pytest.mark.asyncio
async def test_hourly_writes_when_contributors_change(
    settings, registry, numbering, store, fixed_now, page, transport_for
) -> None:
    replies = {"tomsguide.test": page("CRISP"), "techradar.test": 503, "wordtips.test": 503}
    scheduler = make_scheduler(settings, registry, numbering, store, transport_for(replies), fixed_now)
    await scheduler.tick(at(0, 5))

    # Same word, same confidence and status, but a different source backs it.
    replies.update({"tomsguide.test": 503, "techradar.test": page("CRISP")})
    result = await scheduler.tick(at(1, 0))

    assert "updated to candidate" in result[0].message
    stored = await store.get_by_game_number(1511)
    assert stored is not None
    assert stored.predicted_word == "CRISP"
    assert stored.verification_sources == ["techradar"]


# ── Backfill and single-game runs ───────────────────────────────────────

@pytest.mark.asyncio
async def test_backfill_skips_verified(settings, registry, numbering, store, fixed_now, page, transport_for) -> None:
    await store.upsert(Prediction(
        game_number=1502, date=numbering.date_for_game_number(1502), predicted_word="STORK",
        status=PredictionStatus.VERIFIED, confidence_score=0.95,
    ))
    sleep = AsyncMock()
    transport = transport_for({"tomsguide.test": page("GROAN"), "techradar.test": page("GROAN")})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now, sleep)

    result = await scheduler.run_historical_backfill(1501, 1510)

    assert result.success
    assert result.task == TaskName.HISTORICAL_BACKFILL
    assert result.message == "backfill 1501..1510: processed 9, verified 9, skipped 1, failed 0"
    kept = await store.get_by_game_number(1502)
    assert kept is not None and kept.verified_word == "STORK"
    assert len(await store.get_verified_history(limit=50)) == 10
    # Paced between game numbers, not after the last one or a skipped one.
    assert sleep.await_count == 8


@pytest.mark.asyncio
async def test_backfill_counts_failures(settings, registry, numbering, store, fixed_now, transport_for) -> None:
    transport = transport_for({"tomsguide.test": 500})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now)

    result = await scheduler.run_historical_backfill(1509, 1510)

    assert not result.success
    assert result.message.endswith("failed 2")
    for game_number in (1509, 1510):
        placeholder = await store.get_by_game_number(game_number)
        assert placeholder is not None
        assert placeholder.status == PredictionStatus.REJECTED
        assert placeholder.date == numbering.date_for_game_number(game_number)


@pytest.mark.asyncio
@pytest.mark.parametrize(("start", "end", "reason"), [(1510, 1501, "start is after end"), (0, 5, "start at 1")])
async def test_backfill_rejects_bad_ranges(
    settings, registry, numbering, store, fixed_now, transport_for, start: int, end: int, reason: str
) -> None:
    scheduler = make_scheduler(settings, registry, numbering, store, transport_for({}), fixed_now)
    result = await scheduler.run_historical_backfill(start, end)
    assert not result.success
    assert reason in result.message


@pytest.mark.asyncio
async def test_verify_game(settings, registry, numbering, store, fixed_now, page, transport_for) -> None:
    transport = transport_for({"tomsguide.test": page("GROAN"), "techradar.test": page("GROAN")})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now)

    ok = await scheduler.verify_game(1400)
    bad = await scheduler.verify_game(0)

    assert ok.success and ok.game_number == 1400
    assert not bad.success
    history = scheduler.get_task_history()
    assert [t.game_number for t in history] == [0, 1400]
    status = scheduler.get_status()
    assert status.total_tasks == 2
    assert status.last_task == history[0]
    assert status.current_game_number == 1511


@pytest.mark.asyncio
async def test_verify_game_failure_writes_placeholder(
    settings, registry, numbering, store, fixed_now, transport_for
) -> None:
    transport = transport_for({"tomsguide.test": 500, "techradar.test": 500, "wordtips.test": 500})
    scheduler = make_scheduler(settings, registry, numbering, store, transport, fixed_now)

    result = await scheduler.verify_game(1400)

    assert not result.success
    assert "rejected placeholder written" in result.message
    placeholder = await store.get_by_game_number(1400)
    assert placeholder is not None and placeholder.status == PredictionStatus.REJECTED

    # A second failure leaves the placeholder as it is.
    again = await scheduler.verify_game(1400)
    assert "kept existing rejected" in again.message


# ── Lifecycle ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_lets_work_finish(
    settings, registry, numbering, store, fixed_now, page
) -> None:
    entered = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        await release.wait()
        return httpx.Response(200, text=page("GROAN"))

    scheduler = make_scheduler(settings, registry, numbering, store, httpx.MockTransport(handler), fixed_now)

    assert scheduler.start() is True
    assert scheduler.start() is False
    assert scheduler.is_running

    await asyncio.wait_for(entered.wait(), timeout=2)
    assert scheduler.stop() is True
    assert not scheduler.is_running
    assert scheduler.stop() is False

    release.set()
    await scheduler.wait_stopped(timeout=2)

    stored = await store.get_by_game_number(1511)
    assert stored is not None and stored.status == PredictionStatus.VERIFIED
    assert scheduler.get_task_history()[0].task == TaskName.DAILY_COLLECTION
    assert not scheduler.stop_requested


@pytest.mark.asyncio
async def test_restart_after_stop_keeps_a_single_loop(settings, registry, numbering, store, fixed_now) -> None:
    fast = settings.model_copy(update={"tick_interval_s": 0.01})
    scheduler = make_scheduler(fast, registry, numbering, store, httpx.MockTransport(lambda r: httpx.Response(404)), fixed_now)
    ticking: set[Optional[asyncio.Task]] = set()

    async def tick(now: Optional[datetime] = None) -> list:
        ticking.add(asyncio.current_task())
        return []

    scheduler.tick = tick  # type: ignore[method-assign]

    assert scheduler.start() is True
    await asyncio.sleep(0.03)
    first = scheduler._task
    scheduler.stop()
    assert scheduler.start() is True
    second = scheduler._task
    await asyncio.sleep(0.05)

    assert first is not None and first.done()
    assert ticking == {first, second}
    assert scheduler.is_running

    assert scheduler.stop() is True
    await scheduler.wait_stopped(timeout=2)
    assert first.done() and second is not None and second.done()
    assert not scheduler.is_running
    assert not scheduler.stop_requested

    ticking.clear()
    await asyncio.sleep(0.05)
    assert ticking == set()


@pytest.mark.asyncio
async def test_restart_waits_for_in_flight_loop(settings, registry, numbering, store, fixed_now) -> None:
    fast = settings.model_copy(update={"tick_interval_s": 0.01})
    scheduler = make_scheduler(fast, registry, numbering, store, httpx.MockTransport(lambda r: httpx.Response(404)), fixed_now)
    entered = asyncio.Event()
    release = asyncio.Event()
    active = 0
    overlap = False

    async def tick(now: Optional[datetime] = None) -> list:
        nonlocal active, overlap
        active += 1
        overlap = overlap or active > 1
        entered.set()
        await release.wait()
        active -= 1
        return []

    scheduler.tick = tick  # type: ignore[method-assign]

    scheduler.start()
    await asyncio.wait_for(entered.wait(), timeout=2)
    first = scheduler._task
    scheduler.stop()
    assert scheduler.start() is True
    await asyncio.sleep(0.03)
    assert active == 1

    release.set()
    await asyncio.sleep(0.03)
    assert first is not None and first.done()
    scheduler.stop()
    await scheduler.wait_stopped(timeout=2)
    assert not overlap
