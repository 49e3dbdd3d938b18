"""
Seed script for the answer consensus engine.

Creates the predictions, collection_logs and verification_sources tables
(or the local JSON store file) and registers the default verification
sources so the scheduler has something to collect from.

Usage:
    python -m seed
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from verifier.config import get_verifier_settings
from verifier.numbering import GameNumbering
from verifier.registry import sources_from_seeds
from verifier.store import create_store

logger = get_logger(__name__)


async def seed() -> None:
    """Main seed function."""
    setup_logging("seed")
    settings = get_settings()
    verifier_settings = get_verifier_settings()

    store = create_store(settings)
    await store.start()
    try:
        added = await store.ensure_sources(sources_from_seeds(verifier_settings.sources))
        sources = await store.list_sources()
        stats = await store.get_stats()
    finally:
        await store.close()

    numbering = GameNumbering.from_settings(verifier_settings)
    now = datetime.now(timezone.utc)

    print(f"\n{'='*60}")
    print(f"  Answer Consensus Seed: {now.strftime('%Y-%m-%d %H:%M UTC')}")
    print(f"{'='*60}")
    print(f"  Store: {store.name}")
    print(f"  Today's game number: #{numbering.current_game_number(now)}")
    print()
    for source in sources:
        state = "active" if source.is_active else "inactive"
        print(f"  · {source.name:15s} weight {source.weight:.2f}  {state}")
    print()
    print(f"  Summary: {added} new sources, {len(sources)} total; {stats.total} predictions stored")
    print(f"{'='*60}")
    print()

    logger.info("seed_complete", store=store.name, sources_added=added)


if __name__ == "__main__":
    asyncio.run(seed())
