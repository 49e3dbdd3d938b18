"""Postgres store statements and row conversion (no database needed)."""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncIterator

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from shared.models.domain import Prediction
from shared.models.enums import CollectionStatus, PredictionStatus
from shared.models.orm import CollectionLogORM, PredictionORM
from verifier.store.base import StoreError
from verifier.store.sql import SqlPredictionStore, build_upsert, log_entry_from_row, prediction_from_row


def compiled(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def test_upsert_is_keyed_on_game_number() -> None:
    sql = compiled(build_upsert(Prediction(game_number=1511, date=date(2025, 8, 8), predicted_word="GROAN")))
    assert sql.startswith("INSERT INTO predictions")
    assert "ON CONFLICT (game_number) DO UPDATE SET" in sql
    assert "RETURNING" in sql


def test_upsert_never_overwrites_created_at() -> None:
    sql = compiled(build_upsert(Prediction(game_number=1511, date=date(2025, 8, 8), predicted_word="GROAN")))
    update_clause = sql.split("DO UPDATE SET", 1)[1].split("RETURNING", 1)[0]
    assert "created_at" not in update_clause
    assert "updated_at = excluded.updated_at" in update_clause
    assert "status = excluded.status" in update_clause


def test_prediction_from_row() -> None:
    now = datetime(2025, 8, 8, 0, 5, tzinfo=timezone.utc)
    row = PredictionORM(
        game_number=1511,
        date=date(2025, 8, 8),
        predicted_word="GROAN",
        verified_word="GROAN",
        status="verified",
        confidence_score=0.867,
        verification_sources=["tomsguide", "techradar"],
        hints={"category": "daily"},
        created_at=now,
        updated_at=now,
    )
    prediction = prediction_from_row(row)
    assert prediction.status == PredictionStatus.VERIFIED
    assert prediction.word == "GROAN"
    assert prediction.verification_sources == ["tomsguide", "techradar"]
    assert prediction.created_at == now


def test_log_entry_from_row() -> None:
    row = CollectionLogORM(
        game_number=1511,
        source_name="wordtips",
        status="timeout",
        response_time_ms=10000.0,
        error_message="timeout",
        created_at=datetime(2025, 8, 8, tzinfo=timezone.utc),
    )
    entry = log_entry_from_row(row)
    assert entry.status == CollectionStatus.TIMEOUT
    assert entry.collected_word is None


class BrokenDatabase:
    """Sessions fail the way a dropped connection does."""

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[None]:
        raise OperationalError("SELECT 1", {}, ConnectionError("connection refused"))
        yield

    write_session = read_session


@pytest.mark.asyncio
async def test_database_errors_surface_as_store_error() -> None:
    store = SqlPredictionStore(BrokenDatabase(), create_schema=False)  # type: ignore[arg-type]
    with pytest.raises(StoreError):
        await store.get_by_game_number(1511)
    with pytest.raises(StoreError):
        await store.upsert(Prediction(game_number=1511, date=date(2025, 8, 8), predicted_word="GROAN"))
    with pytest.raises(StoreError):
        await store.get_stats()
