from verifier.sources.base import (
    PLACEHOLDER_WORDS,
    Extractor,
    GenericExtractor,
    get_extractor,
    html_to_text,
    is_valid_word,
    normalize_word,
    registered_extractors,
)
from verifier.sources.techradar import TechRadarExtractor
from verifier.sources.tomsguide import TomsGuideExtractor
from verifier.sources.wordleanswer import WordleAnswerExtractor
from verifier.sources.wordtips import WordTipsExtractor

__all__ = [
    "PLACEHOLDER_WORDS",
    "Extractor",
    "GenericExtractor",
    "TechRadarExtractor",
    "TomsGuideExtractor",
    "WordTipsExtractor",
    "WordleAnswerExtractor",
    "get_extractor",
    "html_to_text",
    "is_valid_word",
    "normalize_word",
    "registered_extractors",
]
