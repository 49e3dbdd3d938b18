"""Shared fixtures: engine settings with zero delays, a local store, fake HTTP sources."""
from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Union

import httpx
import pytest

from verifier.config import SourceSeed, VerifierSettings
from verifier.numbering import GameNumbering
from verifier.registry import SourceRegistry, sources_from_seeds
from verifier.store.local import LocalFilePredictionStore

ANCHOR_DATE = date(2025, 8, 8)
ANCHOR_NUMBER = 1511

TEST_SOURCES = [
    SourceSeed(name="tomsguide", url_template="https://tomsguide.test/wordle/{gameNumber}", weight=0.3),
    SourceSeed(name="techradar", url_template="https://techradar.test/wordle/{date}", weight=0.25),
    SourceSeed(name="wordtips", url_template="https://wordtips.test/answer?game={game_number}", weight=0.2),
]

Reply = Union[str, int, Exception]


def answer_page(word: str) -> str:
    return f"<html><body><h1>Hints</h1><p>The answer is {word}.</p></body></html>"


def make_transport(replies: dict[str, Reply]) -> httpx.MockTransport:
    """
    Map host -> reply. A str is served as a 200 body, an int as an empty
    response with that status, an exception is raised from the transport.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        reply = replies.get(request.url.host)
        if reply is None:
            return httpx.Response(404)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, int):
            return httpx.Response(reply)
        return httpx.Response(200, text=reply)

    return httpx.MockTransport(handler)


@pytest.fixture
def settings() -> VerifierSettings:
    return VerifierSettings(
        anchor_date=ANCHOR_DATE,
        anchor_number=ANCHOR_NUMBER,
        sources=list(TEST_SOURCES),
        fetch_timeout_s=2.0,
        retry_max_attempts=3,
        retry_delay_s=0.0,
        backfill_delay_s=0.0,
        persist_retry_delay_s=0.0,
    )


@pytest.fixture
def numbering(settings: VerifierSettings) -> GameNumbering:
    return GameNumbering.from_settings(settings)


@pytest.fixture
def registry(settings: VerifierSettings) -> SourceRegistry:
    return SourceRegistry(sources_from_seeds(settings.sources))


@pytest.fixture
def store(tmp_path: Path) -> LocalFilePredictionStore:
    return LocalFilePredictionStore(tmp_path / "predictions.json")


@pytest.fixture
def fixed_now() -> Callable[[], datetime]:
    return lambda: datetime(2025, 8, 8, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def page() -> Callable[[str], str]:
    return answer_page


@pytest.fixture
def transport_for() -> Callable[[dict[str, Reply]], httpx.MockTransport]:
    return make_transport
