"""
Game numbering: calendar date (UTC) <-> sequential puzzle number.

number = anchor_number + days_between(anchor_date, date). The mapping is
gap-free and unclamped; dates before the anchor yield smaller (possibly
negative) numbers and callers validate the range they accept.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from verifier.config import VerifierSettings, get_verifier_settings

DateLike = Union[date, datetime]


def utc_date(value: DateLike) -> date:
    """Calendar day of value in UTC. Naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(timezone.utc).date()
    return value


class GameNumbering:
    def __init__(self, anchor_date: date, anchor_number: int) -> None:
        self._anchor_date = anchor_date
        self._anchor_number = anchor_number

    @classmethod
    def from_settings(cls, settings: Optional[VerifierSettings] = None) -> "GameNumbering":
        settings = settings or get_verifier_settings()
        return cls(settings.anchor_date, settings.anchor_number)

    @property
    def anchor_date(self) -> date:
        return self._anchor_date

    @property
    def anchor_number(self) -> int:
        return self._anchor_number

    def game_number_for_date(self, value: DateLike) -> int:
        return self._anchor_number + (utc_date(value) - self._anchor_date).days

    def date_for_game_number(self, game_number: int) -> date:
        return self._anchor_date + timedelta(days=game_number - self._anchor_number)

    def current_game_number(self, now: Optional[datetime] = None) -> int:
        return self.game_number_for_date(now or datetime.now(timezone.utc))


def game_number_for_date(value: DateLike) -> int:
    return GameNumbering.from_settings().game_number_for_date(value)


def date_for_game_number(game_number: int) -> date:
    return GameNumbering.from_settings().date_for_game_number(game_number)
