"""Source registry ordering, weights and fail-safe reload."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from shared.models.domain import VerificationSource
from verifier.registry import SourceRegistry


def src(name: str, weight: float, active: bool = True) -> VerificationSource:
    return VerificationSource(name=name, url_template=f"https://{name}.test/", weight=weight, is_active=active)


@pytest.fixture
def reg() -> SourceRegistry:
    return SourceRegistry([src("b", 0.2), src("a", 0.2), src("c", 0.3), src("off", 0.9, active=False)])


def test_active_sources_sorted_by_weight_then_name(reg: SourceRegistry) -> None:
    assert [s.name for s in reg.active_sources()] == ["c", "a", "b"]


def test_weight_for_unknown_and_inactive_is_zero(reg: SourceRegistry) -> None:
    assert reg.weight_for("c") == 0.3
    assert reg.weight_for("off") == 0.0
    assert reg.weight_for("nope") == 0.0


@pytest.mark.asyncio
async def test_reload_swaps_list(reg: SourceRegistry) -> None:
    loader = AsyncMock(return_value=[src("z", 0.5)])
    assert await reg.reload(loader) is True
    assert [s.name for s in reg.active_sources()] == ["z"]


@pytest.mark.asyncio
async def test_failed_reload_keeps_previous_list(reg: SourceRegistry) -> None:
    loader = AsyncMock(side_effect=ConnectionError("db down"))
    assert await reg.reload(loader) is False
    assert [s.name for s in reg.active_sources()] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_empty_reload_keeps_previous_list(reg: SourceRegistry) -> None:
    assert await reg.reload(AsyncMock(return_value=[])) is False
    assert len(reg.active_sources()) == 3


@pytest.mark.asyncio
async def test_snapshot_taken_before_reload_is_unchanged(reg: SourceRegistry) -> None:
    snapshot = reg.active_sources()
    await reg.reload(AsyncMock(return_value=[src("z", 0.5)]))
    assert [s.name for s in snapshot] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_reload_without_loader_is_noop() -> None:
    reg = SourceRegistry([src("a", 0.1)])
    assert await reg.reload() is False
