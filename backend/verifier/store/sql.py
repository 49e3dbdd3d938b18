"""
PostgreSQL-backed prediction store.

Predictions are upserted with INSERT ... ON CONFLICT (game_number) DO UPDATE,
which is atomic per key; created_at is never part of the update set.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.models.domain import (
    CollectionLogEntry,
    Prediction,
    PredictionStats,
    VerificationSource,
)
from shared.models.enums import PredictionStatus
from shared.models.orm import CollectionLogORM, PredictionORM, VerificationSourceORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from verifier.store.base import (
    PredictionStore,
    StoreError,
    apply_status_update,
    compute_stats,
    rolling_rate,
)

logger = get_logger(__name__)

# Columns replaced on conflict; id and created_at belong to the first insert.
_UPSERT_COLUMNS = (
    "date",
    "predicted_word",
    "verified_word",
    "status",
    "confidence_score",
    "verification_sources",
    "hints",
    "updated_at",
)


def prediction_values(prediction: Prediction) -> dict[str, Any]:
    return {
        "game_number": prediction.game_number,
        "date": prediction.date,
        "predicted_word": prediction.predicted_word,
        "verified_word": prediction.verified_word,
        "status": prediction.status.value,
        "confidence_score": prediction.confidence_score,
        "verification_sources": list(prediction.verification_sources),
        "hints": prediction.hints,
        "created_at": prediction.created_at,
        "updated_at": datetime.now(timezone.utc),
    }


def build_upsert(prediction: Prediction):
    """INSERT ... ON CONFLICT (game_number) DO UPDATE ... RETURNING *."""
    stmt = pg_insert(PredictionORM).values(**prediction_values(prediction))
    return stmt.on_conflict_do_update(
        index_elements=[PredictionORM.game_number],
        set_={col: stmt.excluded[col] for col in _UPSERT_COLUMNS},
    ).returning(PredictionORM)


def prediction_from_row(row: PredictionORM) -> Prediction:
    return Prediction.model_validate(row)


def log_entry_from_row(row: CollectionLogORM) -> CollectionLogEntry:
    return CollectionLogEntry.model_validate(row)


class SqlPredictionStore(PredictionStore):
    name = "database"

    def __init__(self, db: DatabaseManager, *, create_schema: bool = True) -> None:
        self._db = db
        self._create_schema = create_schema

    async def start(self) -> None:
        try:
            await self._db.connect()
            if self._create_schema:
                await self._db.create_schema()
        except (OSError, SQLAlchemyError) as exc:
            await self._db.disconnect()
            raise StoreError(f"database unavailable: {exc}") from exc

    async def close(self) -> None:
        await self._db.disconnect()

    async def ping(self) -> bool:
        return await self._db.ping()

    # ── Predictions ─────────────────────────────────────────────────────
    async def _fetch_one(self, stmt) -> Optional[Prediction]:
        try:
            async with self._db.read_session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        return prediction_from_row(row) if row else None

    async def _fetch_many(self, stmt) -> list[Prediction]:
        try:
            async with self._db.read_session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        return [prediction_from_row(r) for r in rows]

    async def get_by_game_number(self, game_number: int) -> Optional[Prediction]:
        return await self._fetch_one(
            select(PredictionORM).where(PredictionORM.game_number == game_number)
        )

    async def get_by_date(self, day: date) -> Optional[Prediction]:
        return await self._fetch_one(select(PredictionORM).where(PredictionORM.date == day))

    async def get_latest_verified(self) -> Optional[Prediction]:
        return await self._fetch_one(
            select(PredictionORM)
            .where(PredictionORM.status == PredictionStatus.VERIFIED.value)
            .order_by(PredictionORM.game_number.desc())
            .limit(1)
        )

    async def get_candidates(self, limit: int = 10) -> list[Prediction]:
        return await self._fetch_many(
            select(PredictionORM)
            .where(PredictionORM.status == PredictionStatus.CANDIDATE.value)
            .order_by(PredictionORM.date.asc())
            .limit(limit)
        )

    async def get_verified_history(self, limit: int = 20) -> list[Prediction]:
        return await self._fetch_many(
            select(PredictionORM)
            .where(PredictionORM.status == PredictionStatus.VERIFIED.value)
            .order_by(PredictionORM.game_number.desc())
            .limit(limit)
        )

    async def upsert(self, prediction: Prediction) -> Prediction:
        try:
            async with self._db.write_session() as session:
                row = (await session.execute(build_upsert(prediction))).scalar_one()
                stored = prediction_from_row(row)
        except SQLAlchemyError as exc:
            logger.error("prediction_upsert_failed", game_number=prediction.game_number, error=str(exc))
            raise StoreError(str(exc)) from exc
        return stored

    async def update_status(
        self,
        game_number: int,
        status: PredictionStatus,
        word: Optional[str] = None,
        confidence: Optional[float] = None,
        sources: Optional[list[str]] = None,
    ) -> Optional[Prediction]:
        try:
            async with self._db.write_session() as session:
                row = (
                    await session.execute(
                        select(PredictionORM)
                        .where(PredictionORM.game_number == game_number)
                        .with_for_update()
                    )
                ).scalar_one_or_none()
                if row is None:
                    return None
                updated = apply_status_update(prediction_from_row(row), status, word, confidence, sources)
                row.predicted_word = updated.predicted_word
                row.verified_word = updated.verified_word
                row.status = updated.status.value
                row.confidence_score = updated.confidence_score
                row.verification_sources = list(updated.verification_sources)
                row.updated_at = updated.updated_at
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        return updated

    async def get_stats(self) -> PredictionStats:
        try:
            async with self._db.read_session() as session:
                rows = (
                    await session.execute(
                        select(PredictionORM.status, func.count()).group_by(PredictionORM.status)
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        return compute_stats({status: count for status, count in rows})

    # ── Collection log ──────────────────────────────────────────────────
    async def log_collections(self, entries: list[CollectionLogEntry]) -> None:
        if not entries:
            return
        try:
            async with self._db.write_session() as session:
                session.add_all([
                    CollectionLogORM(
                        game_number=e.game_number,
                        source_name=e.source_name,
                        collected_word=e.collected_word,
                        status=e.status.value,
                        response_time_ms=e.response_time_ms,
                        error_message=e.error_message,
                        raw_data_ref=e.raw_data_ref,
                        created_at=e.created_at,
                    )
                    for e in entries
                ])
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    async def get_collection_logs(self, game_number: int) -> list[CollectionLogEntry]:
        try:
            async with self._db.read_session() as session:
                rows = (
                    await session.execute(
                        select(CollectionLogORM)
                        .where(CollectionLogORM.game_number == game_number)
                        .order_by(CollectionLogORM.id)
                    )
                ).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        return [log_entry_from_row(r) for r in rows]

    # ── Source config ───────────────────────────────────────────────────
    async def list_sources(self, active_only: bool = False) -> list[VerificationSource]:
        stmt = select(VerificationSourceORM).order_by(VerificationSourceORM.name)
        if active_only:
            stmt = stmt.where(VerificationSourceORM.is_active.is_(True))
        try:
            async with self._db.read_session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        return [VerificationSource.model_validate(r) for r in rows]

    async def ensure_sources(self, sources: list[VerificationSource]) -> int:
        if not sources:
            return 0
        stmt = pg_insert(VerificationSourceORM).values([
            {
                "name": s.name,
                "url_template": s.url_template,
                "weight": s.weight,
                "is_active": s.is_active,
                "success_rate": s.success_rate,
            }
            for s in sources
        ]).on_conflict_do_nothing(index_elements=["name"]).returning(VerificationSourceORM.name)
        try:
            async with self._db.write_session() as session:
                added = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        if added:
            logger.info("sources_seeded", sources=list(added))
        return len(added)

    async def record_source_result(self, name: str, success: bool, alpha: float = 0.1) -> None:
        try:
            async with self._db.write_session() as session:
                row = (
                    await session.execute(
                        select(VerificationSourceORM)
                        .where(VerificationSourceORM.name == name)
                        .with_for_update()
                    )
                ).scalar_one_or_none()
                if row is None:
                    return
                row.success_rate = rolling_rate(row.success_rate, success, alpha)
                row.last_check = datetime.now(timezone.utc)
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
