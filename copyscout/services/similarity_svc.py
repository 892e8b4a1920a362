from __future__ import annotations

import re
from difflib import SequenceMatcher

PUNCTUATION = re.compile(r"[^\w\s]")
WHITESPACE = re.compile(r"\s+")


def _normalize(text: str) -> str:
    return WHITESPACE.sub(" ", PUNCTUATION.sub("", text.lower())).strip()


def similarity_score(a: str | None, b: str | None) -> int:
    """Text similarity as an integer percentage, ignoring case, punctuation and spacing."""
    if not a or not b:
        return 0
    left, right = _normalize(a), _normalize(b)
    if not left or not right:
        return 0
    return round(SequenceMatcher(None, left, right).ratio() * 100)
