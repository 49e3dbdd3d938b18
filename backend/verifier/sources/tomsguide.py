"""
Tom's Guide daily answer article.
The answer is revealed after a "Drumroll please" lead-in.
"""
from __future__ import annotations

import re

from verifier.sources.base import Extractor


class TomsGuideExtractor(Extractor):
    source_name = "tomsguide"
    patterns = (
        re.compile(r"(?i:drumroll[^a-zA-Z]*please[^a-zA-Z]*it[’']s)[^a-zA-Z]*([A-Z]{5})\b"),
        re.compile(r"(?i:wordle[^a-zA-Z]*(?:game[^a-zA-Z]*)?#?\d+[^a-zA-Z]*is)[^a-zA-Z]*([A-Z]{5})\b"),
    )
