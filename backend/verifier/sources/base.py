"""
Extraction contract shared by every answer source.
An extractor turns an untrusted response body into a 5-letter uppercase word or None.
"""
from __future__ import annotations

import html
import re
from typing import ClassVar, Optional, Pattern

from shared.utils.logging import get_logger

logger = get_logger(__name__)

# Tokens that show up next to "answer" on every hint page but are never the answer
PLACEHOLDER_WORDS: frozenset[str] = frozenset({
    "TODAY", "WORDLE", "ANSWER", "GUESS", "HINTS", "CLUES", "GAMES", "WORDS", "TILES", "SCORE",
})

_VALID_WORD = re.compile(r"^[A-Z]{5}$")
_SCRIPT_STYLE = re.compile(r"<(script|style|noscript)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_UPPER_TOKEN = re.compile(r"\b[A-Z]{5}\b")

CONTEXT_WINDOW = 100
CONTEXT_KEYWORDS = ("answer", "solution")

# Generic phrasing used by most answer pages; tried after source-specific rules.
# Keywords match case-insensitively, the answer itself must be printed in capitals.
GENERIC_PATTERNS: tuple[Pattern[str], ...] = (
    re.compile(r"(?i:answer[^a-zA-Z]*is)[^a-zA-Z]*([A-Z]{5})\b"),
    re.compile(r"(?i:solution[^a-zA-Z]*is)[^a-zA-Z]*([A-Z]{5})\b"),
    re.compile(r"(?i:today[’']s[^a-zA-Z]*wordle[^a-zA-Z]*answer)[^a-zA-Z]*([A-Z]{5})\b"),
    re.compile(r"(?i:wordle[^a-zA-Z]*#\d+[^a-zA-Z]*answer)[^a-zA-Z]*([A-Z]{5})\b"),
)


def normalize_word(raw: Optional[str]) -> Optional[str]:
    """Uppercase and validate a candidate; None if it fails the word contract."""
    if not raw:
        return None
    word = raw.strip().upper()
    if not _VALID_WORD.match(word):
        return None
    if word in PLACEHOLDER_WORDS:
        return None
    return word


def is_valid_word(raw: Optional[str]) -> bool:
    return normalize_word(raw) is not None


def html_to_text(body: str) -> str:
    """Strip scripts, styles and tags; unescape entities; collapse whitespace."""
    text = _SCRIPT_STYLE.sub(" ", body)
    text = _TAG.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE.sub(" ", text).strip()


class Extractor:
    """
    Base extraction strategy.

    Subclasses set source_name and patterns; they are registered by name on
    definition so that get_extractor() resolves them without a shared dispatch table.
    Unknown source names fall back to the generic strategy.
    """

    source_name: ClassVar[str] = "generic"
    patterns: ClassVar[tuple[Pattern[str], ...]] = ()

    _registry: ClassVar[dict[str, type["Extractor"]]] = {}

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        Extractor._registry[cls.source_name.lower()] = cls

    def extract(self, body: str) -> Optional[str]:
        """Return the answer word found in body, or None."""
        if not body:
            return None
        text = html_to_text(body)
        for pattern in (*self.patterns, *GENERIC_PATTERNS):
            for match in pattern.finditer(text):
                word = normalize_word(match.group(1))
                if word:
                    logger.debug("extractor_pattern_match", source=self.source_name, word=word)
                    return word
        return self._contextual_match(text)

    def _contextual_match(self, text: str) -> Optional[str]:
        """
        Last resort: uppercase 5-letter tokens. A single valid token wins;
        otherwise the first one with "answer"/"solution" nearby.
        """
        candidates: list[tuple[int, str]] = []
        for m in _UPPER_TOKEN.finditer(text):
            word = normalize_word(m.group(0))
            if word:
                candidates.append((m.start(), word))
        if not candidates:
            return None
        if len({w for _, w in candidates}) == 1:
            return candidates[0][1]
        lowered = text.lower()
        for pos, word in candidates:
            window = lowered[max(0, pos - CONTEXT_WINDOW):pos + CONTEXT_WINDOW]
            if any(k in window for k in CONTEXT_KEYWORDS):
                return word
        return None


class GenericExtractor(Extractor):
    source_name = "generic"


def get_extractor(source_name: str) -> Extractor:
    cls = Extractor._registry.get(source_name.lower(), GenericExtractor)
    return cls()


def registered_extractors() -> list[str]:
    return sorted(Extractor._registry)
