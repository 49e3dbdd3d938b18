"""TechRadar "Wordle today" article."""
from __future__ import annotations

import re

from verifier.sources.base import Extractor


class TechRadarExtractor(Extractor):
    source_name = "techradar"
    patterns = (
        re.compile(r"(?i:today[’']s\s*wordle\s*answer[^a-zA-Z]*game[^a-zA-Z]*#\d+[^a-zA-Z]*is)[^a-zA-Z]*([A-Z]{5})\b"),
        re.compile(r"(?i:wordle\s*answer[^a-zA-Z]*game[^a-zA-Z]*#\d+[^a-zA-Z]*is)[^a-zA-Z]*([A-Z]{5})\b"),
    )
