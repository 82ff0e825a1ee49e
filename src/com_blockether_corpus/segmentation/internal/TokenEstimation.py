"""
Script-aware token estimation.

A deterministic character-count approximation: characters of the narrow
script average about 3 per token, everything else about 4. No tokenizer is
loaded, so chunking has no external dependency.
"""

import math
import re

HEBREW_CHARACTERS = re.compile(r"[\u0590-\u05FF]")

NARROW_SCRIPT_CHARS_PER_TOKEN = 3
OTHER_CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    narrow = len(HEBREW_CHARACTERS.findall(text))
    other = len(text) - narrow
    return math.ceil(narrow / NARROW_SCRIPT_CHARS_PER_TOKEN + other / OTHER_CHARS_PER_TOKEN)
