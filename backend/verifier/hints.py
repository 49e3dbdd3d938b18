"""
Hints payload stored alongside a prediction.

The payload is opaque to the engine; it is regenerated whenever a
prediction carries a word and is served as-is by the API.
"""
from __future__ import annotations

from typing import Any

VOWELS = "AEIOU"
UNCOMMON_LETTERS = "QXZJV"
UNCOMMON_PAIRS = ("QU", "XY", "ZZ", "JJ", "VV")
MAX_CLUES = 3
CONFIRMED_CONFIDENCE = 0.8

COMMON_WORDS = frozenset({
    "ABOUT", "ABOVE", "AFTER", "AGAIN", "AMONG", "APPLE", "BEACH", "BREAD", "BRING", "BUILD",
    "CHAIR", "CLEAN", "CLEAR", "CLOSE", "COULD", "DANCE", "DREAM", "DRIVE", "EARLY", "EARTH",
    "FIELD", "FIRST", "FRESH", "FRONT", "FRUIT", "GLASS", "GREAT", "GREEN", "HAPPY", "HEART",
    "HOUSE", "LIGHT", "MIGHT", "MONEY", "MUSIC", "NIGHT", "OTHER", "PAPER", "PARTY", "PEACE",
    "PLACE", "PLANT", "POINT", "POWER", "QUICK", "QUIET", "RIGHT", "ROUND", "SMALL", "SMILE",
    "SOUND", "SPACE", "SPEAK", "SPEND", "START", "STORY", "STUDY", "TABLE", "THANK", "THINK",
    "THREE", "UNDER", "UNTIL", "VOICE", "WATER", "WHERE", "WHILE", "WHITE", "WORLD",
})

WORD_TYPES: dict[str, frozenset[str]] = {
    "noun": frozenset({
        "APPLE", "BEACH", "BREAD", "CHAIR", "DREAM", "EARTH", "FIELD", "FRUIT", "GLASS", "HEART",
        "HOUSE", "MONEY", "MUSIC", "PAPER", "PARTY", "PEACE", "PLACE", "PLANT", "POINT", "POWER",
        "SMILE", "SOUND", "SPACE", "STORY", "TABLE", "VOICE", "WATER", "WORLD",
    }),
    "verb": frozenset({
        "BRING", "BUILD", "CLEAN", "CLEAR", "CLOSE", "DANCE", "DRIVE", "SPEAK", "SPEND", "START",
        "STUDY", "THANK", "THINK",
    }),
    "adjective": frozenset({
        "EARLY", "FIRST", "FRESH", "GREAT", "GREEN", "HAPPY", "OTHER", "QUICK", "QUIET", "RIGHT",
        "ROUND", "SMALL", "WHITE",
    }),
    "adverb": frozenset({"ABOUT", "ABOVE", "AFTER", "AGAIN", "AMONG", "UNDER", "UNTIL", "WHERE", "WHILE"}),
}


def _has_repeats(word: str) -> bool:
    return len(set(word)) < len(word)


def word_type(word: str) -> str:
    for kind, words in WORD_TYPES.items():
        if word in words:
            return kind
    return "common word"


def difficulty_level(word: str) -> str:
    """Easy / Medium / Hard from commonness, uncommon letters and repeats."""
    if word in COMMON_WORDS:
        return "Easy"
    uncommon_pair = any(pair in word for pair in UNCOMMON_PAIRS)
    uncommon_letter = any(ch in UNCOMMON_LETTERS for ch in word)
    repeats = _has_repeats(word)
    if uncommon_pair or (uncommon_letter and repeats):
        return "Hard"
    if uncommon_letter or repeats:
        return "Medium"
    return "Easy"


def letter_hints(word: str) -> list[str]:
    if len(word) != 5:
        return []
    hints = [f'Starts with "{word[0]}"']
    unique = sorted(set(word))
    if len(unique) < 5:
        hints.append(f"Contains letters: {', '.join(unique)}")
    hints.append(f'Ends with "{word[-1]}"')
    return hints


def clues(word: str) -> list[str]:
    found: list[str] = []
    vowel_count = sum(1 for ch in word if ch in VOWELS)
    if vowel_count >= 3:
        found.append("This word is vowel-rich")
    elif vowel_count <= 1:
        found.append("This word has few vowels")
    if _has_repeats(word):
        found.append("Contains repeated letters")
    if word[0] in VOWELS:
        found.append("Starts with a vowel")
    if word[-1] in VOWELS:
        found.append("Ends with a vowel")
    if "TH" in word:
        found.append('Contains the "TH" combination')
    if "ED" in word:
        found.append('Contains the "ED" combination')
    if not found:
        found = ["Pay attention to letter positioning", "Consider word patterns and frequency"]
    return found[:MAX_CLUES]


def generate_hints(word: str, confidence: float) -> dict[str, Any]:
    word = word.upper()
    return {
        "category": "daily",
        "difficulty": "confirmed" if confidence > CONFIRMED_CONFIDENCE else "predicted",
        "first_letter": word[0],
        "length": len(word),
        "vowels": sorted({ch for ch in word if ch in VOWELS}),
        "consonants": sorted({ch for ch in word if ch not in VOWELS}),
        "word_type": word_type(word),
        "level": difficulty_level(word),
        "clues": clues(word),
        "letter_hints": letter_hints(word),
    }


def failure_hints(error: str) -> dict[str, Any]:
    """Payload for a placeholder written after collection gave up."""
    return {
        "category": "collection_failed",
        "difficulty": "unknown",
        "clues": [f"Automatic collection failed: {error}"],
        "letter_hints": [],
    }
