"""
Engine configuration: anchor, collector, consensus thresholds, scheduler cadence.
Uses AV_VERIFIER_ prefix; storage and logging settings come from shared.config.
"""
from __future__ import annotations

from datetime import date
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceSeed(BaseModel):
    """Default source definition used to seed the registry/config table."""
    name: str
    url_template: str
    weight: float = Field(gt=0)
    is_active: bool = True


DEFAULT_SOURCES: list[SourceSeed] = [
    SourceSeed(
        name="tomsguide",
        url_template="https://www.tomsguide.com/news/what-is-todays-wordle-answer",
        weight=0.3,
    ),
    SourceSeed(
        name="techradar",
        url_template="https://www.techradar.com/news/wordle-today",
        weight=0.25,
    ),
    SourceSeed(
        name="wordtips",
        url_template="https://word.tips/todays-wordle-answer/",
        weight=0.2,
    ),
    SourceSeed(
        name="wordleanswer",
        url_template="https://wordleanswer.com/todays-wordle-answer",
        weight=0.15,
        is_active=False,
    ),
]


class VerifierSettings(BaseSettings):
    """Engine-specific settings; use get_settings() for storage/logging."""

    model_config = SettingsConfigDict(
        env_prefix="AV_VERIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Game numbering anchor (UTC calendar day -> puzzle number)
    anchor_date: date = Field(default=date(2025, 8, 8), description="Calendar day of anchor_number")
    anchor_number: int = Field(default=1511, description="Game number published on anchor_date")

    # Collector
    fetch_timeout_s: float = Field(default=10.0, description="Per-source request timeout")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
        ),
    )
    sources: list[SourceSeed] = Field(default_factory=lambda: list(DEFAULT_SOURCES))
    success_rate_alpha: float = Field(default=0.1, description="EMA factor for rolling source success rate")

    # Consensus
    verified_threshold: float = Field(default=0.7, description="Min confidence for verified")
    candidate_threshold: float = Field(default=0.3, description="Confidence must exceed this for candidate")
    min_sources: int = Field(default=2, description="Min agreeing sources for verified")
    agreement_bonus: float = Field(default=0.2, description="Max bonus for cross-source agreement")

    # Scheduler
    tick_interval_s: float = Field(default=60.0, description="Control loop tick granularity")
    daily_cutoff_hour: int = Field(default=0, ge=0, le=23)
    daily_cutoff_minute: int = Field(default=1, ge=0, le=59)
    retry_max_attempts: int = Field(default=3, description="Pipeline retries after a total failure")
    retry_delay_s: float = Field(default=30.0, description="Fixed delay between pipeline retries")
    backfill_delay_s: float = Field(default=3.0, description="Delay between backfilled game numbers")
    backfill_default_days: int = Field(default=30, description="Backfill window when no range is given")
    task_history_limit: int = Field(default=100)

    # Persistence retries
    persist_max_attempts: int = Field(default=3)
    persist_retry_delay_s: float = Field(default=1.0)


@lru_cache(maxsize=1)
def get_verifier_settings() -> VerifierSettings:
    """Load engine settings once per process."""
    return VerifierSettings()
