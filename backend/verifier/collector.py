"""
Collector: fetch every active source concurrently and extract its answer.

collect() never raises for source problems. Each request is bounded by its
own timeout; one slow source never cancels its siblings. Outcomes are logged
to the store only after every source has settled.
"""
from __future__ import annotations

import asyncio
import time
from typing import Optional

import httpx

from shared.models.domain import CollectionLogEntry, SourceOutcome, VerificationSource
from shared.models.enums import CollectionStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_FETCHES, SOURCE_LATENCY
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.numbering import GameNumbering
from verifier.registry import SourceRegistry
from verifier.sources import get_extractor
from verifier.store.base import PredictionStore, StoreError

logger = get_logger(__name__)

NO_MATCH_ERROR = "no answer found in response"


class Collector:
    def __init__(
        self,
        registry: SourceRegistry,
        store: Optional[PredictionStore],
        numbering: GameNumbering,
        settings: Optional[VerifierSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._numbering = numbering
        self._settings = settings or get_verifier_settings()
        self._transport = transport

    def build_url(self, source: VerificationSource, game_number: int) -> str:
        day = self._numbering.date_for_game_number(game_number).isoformat()
        return (
            source.url_template
            .replace("{gameNumber}", str(game_number))
            .replace("{game_number}", str(game_number))
            .replace("{date}", day)
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={
                "User-Agent": self._settings.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            },
            timeout=httpx.Timeout(self._settings.fetch_timeout_s),
            follow_redirects=True,
            transport=self._transport,
        )

    async def collect(self, game_number: int) -> list[SourceOutcome]:
        """One outcome per active source, in no particular order."""
        sources = self._registry.active_sources()
        if not sources:
            logger.warning("collector_no_active_sources", game_number=game_number)
            return []

        async with self._client() as client:
            outcomes = await asyncio.gather(
                *(self._fetch_one(client, source, game_number) for source in sources)
            )

        await self._record(game_number, outcomes)
        logger.info(
            "collection_complete",
            game_number=game_number,
            attempted=len(outcomes),
            successful=sum(1 for o in outcomes if o.success),
        )
        return list(outcomes)

    async def _fetch_one(
        self,
        client: httpx.AsyncClient,
        source: VerificationSource,
        game_number: int,
    ) -> SourceOutcome:
        url = self.build_url(source, game_number)
        start = time.perf_counter()
        raw_ref: dict = {"url": url}

        def elapsed_ms() -> float:
            return round((time.perf_counter() - start) * 1000, 2)

        try:
            resp = await asyncio.wait_for(client.get(url), timeout=self._settings.fetch_timeout_s)
            raw_ref["status_code"] = resp.status_code
            raw_ref["body_length"] = len(resp.content)
            resp.raise_for_status()
            word = get_extractor(source.name).extract(resp.text)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            outcome = SourceOutcome(
                source_name=source.name,
                status=CollectionStatus.TIMEOUT,
                response_time_ms=elapsed_ms(),
                error=f"timed out after {self._settings.fetch_timeout_s}s",
                raw_data_ref=raw_ref,
            )
        except httpx.HTTPStatusError as exc:
            outcome = SourceOutcome(
                source_name=source.name,
                status=CollectionStatus.FAILED,
                response_time_ms=elapsed_ms(),
                error=f"HTTP {exc.response.status_code}",
                raw_data_ref=raw_ref,
            )
        except Exception as exc:
            outcome = SourceOutcome(
                source_name=source.name,
                status=CollectionStatus.FAILED,
                response_time_ms=elapsed_ms(),
                error=f"{type(exc).__name__}: {exc}",
                raw_data_ref=raw_ref,
            )
        else:
            outcome = SourceOutcome(
                source_name=source.name,
                word=word,
                success=word is not None,
                status=CollectionStatus.SUCCESS if word else CollectionStatus.FAILED,
                response_time_ms=elapsed_ms(),
                error=None if word else NO_MATCH_ERROR,
                raw_data_ref=raw_ref,
            )

        SOURCE_FETCHES.labels(source=source.name, status=outcome.status.value).inc()
        SOURCE_LATENCY.labels(source=source.name).observe(outcome.response_time_ms / 1000)
        if outcome.success:
            logger.debug("source_fetch_success", source=source.name, game_number=game_number, word=outcome.word)
        else:
            logger.warning(
                "source_fetch_failed",
                source=source.name,
                game_number=game_number,
                status=outcome.status.value,
                error=outcome.error,
            )
        return outcome

    async def _record(self, game_number: int, outcomes: list[SourceOutcome]) -> None:
        """Append outcomes to the collection log and fold them into source success rates."""
        if self._store is None:
            return
        try:
            await self._store.log_collections(
                [CollectionLogEntry.from_outcome(game_number, o) for o in outcomes]
            )
        except StoreError as exc:
            logger.error("collection_log_write_failed", game_number=game_number, error=str(exc))
        for outcome in outcomes:
            try:
                await self._store.record_source_result(
                    outcome.source_name, outcome.success, self._settings.success_rate_alpha
                )
            except StoreError as exc:
                logger.error("source_stats_write_failed", source=outcome.source_name, error=str(exc))
