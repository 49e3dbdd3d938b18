"""wordleanswer.com: terse "Answer: X" layout."""
from __future__ import annotations

import re

from verifier.sources.base import Extractor


class WordleAnswerExtractor(Extractor):
    source_name = "wordleanswer"
    patterns = (
        re.compile(r"(?i:answer)[:\s]+([A-Z]{5})\b"),
    )
