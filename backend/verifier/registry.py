"""
In-memory view of the configured verification sources.

The list is replaced wholesale on reload (atomic swap of an immutable tuple),
so a pipeline iterating the previous snapshot is never affected. A failed
reload keeps the previous list.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Optional

from shared.models.domain import VerificationSource
from shared.utils.logging import get_logger
from shared.utils.metrics import ACTIVE_SOURCES
from verifier.config import SourceSeed, VerifierSettings, get_verifier_settings

logger = get_logger(__name__)

SourceLoader = Callable[[], Awaitable[list[VerificationSource]]]


def sources_from_seeds(seeds: Iterable[SourceSeed]) -> list[VerificationSource]:
    return [VerificationSource(**seed.model_dump()) for seed in seeds]


class SourceRegistry:
    def __init__(
        self,
        sources: Optional[Iterable[VerificationSource]] = None,
        loader: Optional[SourceLoader] = None,
    ) -> None:
        self._sources: tuple[VerificationSource, ...] = tuple(sources or ())
        self._loader = loader
        ACTIVE_SOURCES.set(len(self.active_sources()))

    @classmethod
    def from_settings(
        cls,
        settings: Optional[VerifierSettings] = None,
        loader: Optional[SourceLoader] = None,
    ) -> "SourceRegistry":
        settings = settings or get_verifier_settings()
        return cls(sources_from_seeds(settings.sources), loader=loader)

    def all_sources(self) -> list[VerificationSource]:
        return list(self._sources)

    def active_sources(self) -> list[VerificationSource]:
        """Active sources by descending weight, then name."""
        snapshot = self._sources
        return sorted((s for s in snapshot if s.is_active), key=lambda s: (-s.weight, s.name))

    def get(self, name: str) -> Optional[VerificationSource]:
        for source in self._sources:
            if source.name == name:
                return source
        return None

    def weight_for(self, name: str) -> float:
        """Vote weight of name; 0 for unknown or inactive sources."""
        source = self.get(name)
        if source is None or not source.is_active:
            return 0.0
        return source.weight

    async def reload(self, loader: Optional[SourceLoader] = None) -> bool:
        """
        Replace the source list from loader (or the one given at construction).
        Returns False and keeps the current list if loading fails or yields nothing.
        """
        loader = loader or self._loader
        if loader is None:
            return False
        try:
            loaded = await loader()
        except Exception as exc:
            logger.warning("source_registry_reload_failed", error=str(exc), kept=len(self._sources))
            return False
        if not loaded:
            logger.warning("source_registry_reload_empty", kept=len(self._sources))
            return False
        self._sources = tuple(loaded)
        active = self.active_sources()
        ACTIVE_SOURCES.set(len(active))
        logger.info(
            "source_registry_reloaded",
            total=len(self._sources),
            active=[s.name for s in active],
        )
        return True
