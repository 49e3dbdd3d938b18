"""word.tips answer page: "The answer for today's Wordle on <date> (#N) is X"."""
from __future__ import annotations

import re

from verifier.sources.base import Extractor


class WordTipsExtractor(Extractor):
    source_name = "wordtips"
    patterns = (
        re.compile(r"(?i:the\s*answer\s*for\s*today[’']s\s*wordle\s*on[^a-zA-Z]*#\d+[^a-zA-Z]*is)[^a-zA-Z]*([A-Z]{5})\b"),
        re.compile(
            r"(?i:answer[^a-zA-Z]*for[^a-zA-Z]*today[’']s[^a-zA-Z]*wordle[^a-zA-Z]*on[^a-zA-Z]*\w+"
            r"[^a-zA-Z]*\d+[^a-zA-Z]*#\d+[^a-zA-Z]*is)[^a-zA-Z]*([A-Z]{5})\b"
        ),
    )
