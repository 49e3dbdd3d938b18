"""
SQLAlchemy 2.0 ORM models for the answer consensus engine.
Three logical tables: predictions, collection_logs, verification_sources.
"""
from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PredictionORM(Base):
    __tablename__ = "predictions"
    __table_args__ = (
        CheckConstraint("status IN ('candidate', 'verified', 'rejected')", name="chk_prediction_status"),
        CheckConstraint("confidence_score >= 0 AND confidence_score <= 1", name="chk_confidence_range"),
        CheckConstraint(
            "(status = 'verified') = (verified_word IS NOT NULL)",
            name="chk_verified_word_status",
        ),
        Index("ix_predictions_status_date", "status", "date"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    game_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, unique=True, nullable=False)
    predicted_word: Mapped[Optional[str]] = mapped_column(String(5))
    verified_word: Mapped[Optional[str]] = mapped_column(String(5))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="candidate")
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    verification_sources: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    hints: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CollectionLogORM(Base):
    __tablename__ = "collection_logs"
    __table_args__ = (
        CheckConstraint("status IN ('success', 'failed', 'timeout')", name="chk_collection_status"),
        Index("ix_collection_logs_game_number", "game_number"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    game_number: Mapped[int] = mapped_column(Integer, nullable=False)
    source_name: Mapped[str] = mapped_column(String(100), nullable=False)
    collected_word: Mapped[Optional[str]] = mapped_column(String(5))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    response_time_ms: Mapped[Optional[float]] = mapped_column(Float)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    raw_data_ref: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class VerificationSourceORM(Base):
    __tablename__ = "verification_sources"
    __table_args__ = (
        CheckConstraint("weight > 0", name="chk_source_weight_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    url_template: Mapped[str] = mapped_column(Text, nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    success_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    last_check: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
