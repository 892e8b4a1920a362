from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable

from copyscout.domain.models import QueryProfile, QueryVariant, VariantKey
from copyscout.domain.vocabulary import (
    GENERIC_QUERY_TERMS,
    KEYWORD_WINDOW_TOKENS,
    MAX_KEYWORD_TOKENS,
    STOPWORDS,
)

logger = logging.getLogger(__name__)

ZERO_WIDTH_CHARS = re.compile("[\u200B-\u200D\uFEFF]")
WHITESPACE = re.compile(r"\s+")
TRAILING_PUNCT_REPEAT = re.compile(r"([!?.,])\1{2,}$")
# Everything except letters, digits, whitespace, '@' and '#'.
STRIP_PUNCT = re.compile(r"[^\w\s@#]|_")

MIN_QUERY_CHARS = 10
MIN_VARIANT_CHARS = 8
MIN_VARIANT_TOKENS = 3
CORE_WINDOW_MIN = 10
CORE_WINDOW_MAX = 16
SHORT_QUERY_TOKENS = 3
SHORT_QUERY_CHARS = 18


def normalize_search_text(text: str | None) -> str:
    """Drop zero-width characters, collapse whitespace and trailing '!!!'-style runs."""
    cleaned = WHITESPACE.sub(" ", ZERO_WIDTH_CHARS.sub("", str(text or ""))).strip()
    return TRAILING_PUNCT_REPEAT.sub(r"\1", cleaned).strip()


def strip_punctuation(text: str | None) -> str:
    """Stricter pass: keep only letters, digits, whitespace, '@' and '#'."""
    return WHITESPACE.sub(" ", STRIP_PUNCT.sub("", normalize_search_text(text))).strip()


def tokenize(text: str | None) -> list[str]:
    return [token for token in normalize_search_text(text).split(" ") if token]


def is_variant_useful(plain: str) -> bool:
    normalized = normalize_search_text(plain)
    if len(normalized) < MIN_VARIANT_CHARS:
        return False
    return len(normalized.split(" ")) >= MIN_VARIANT_TOKENS


def build_core_window(tokens: list[str]) -> str:
    """Return the middle 10-16 tokens of a long post; short posts pass through whole."""
    if len(tokens) <= CORE_WINDOW_MAX:
        return " ".join(tokens)
    size = min(CORE_WINDOW_MAX, max(CORE_WINDOW_MIN, math.floor(len(tokens) * 0.6)))
    start = max(0, (len(tokens) - size) // 2)
    return " ".join(tokens[start:start + size])


def keyword_tokens(tokens: Iterable[str], limit: int = MAX_KEYWORD_TOKENS) -> list[str]:
    """Unique tokens minus stopwords; hashtags and mentions always survive."""
    unique: list[str] = []
    seen: set[str] = set()
    for token in tokens:
        lower = token.lower()
        if lower in seen:
            continue
        seen.add(lower)
        if lower in STOPWORDS and not lower.startswith(("#", "@")):
            continue
        unique.append(token)
        if len(unique) >= limit:
            break
    return unique


def _unquote(query: str) -> str:
    if len(query) >= 2 and query.startswith('"') and query.endswith('"'):
        return query[1:-1]
    return query


def build_query_variants(raw_text: str | None, max_variants: int = 4) -> list[QueryVariant]:
    """
    Build the ordered, de-duplicated set of search strings for one request.

    Candidates are tried most literal first: the exact text quoted, the
    punctuation-stripped text quoted, a quoted middle window for long posts,
    and an unquoted keyword list. Candidates shorter than 8 characters or 3
    tokens are dropped, duplicates are removed case-insensitively on their
    unquoted text, and at most ``max_variants`` are returned. An empty list
    means the input is not searchable.
    """
    normalized = normalize_search_text(raw_text)
    if len(normalized) < MIN_QUERY_CHARS or max_variants < 1:
        return []

    stripped = strip_punctuation(normalized)
    tokens = tokenize(stripped)

    candidates: list[tuple[VariantKey, str]] = [
        (VariantKey.EXACT_QUOTED, f'"{normalized}"'),
        (VariantKey.NORMALIZED_QUOTED, f'"{stripped}"'),
    ]
    if len(tokens) > CORE_WINDOW_MAX:
        candidates.append((VariantKey.CORE_WINDOW_QUOTED, f'"{build_core_window(tokens)}"'))
    candidates.append((VariantKey.KEYWORD_FALLBACK, " ".join(keyword_tokens(tokens))))

    variants: list[QueryVariant] = []
    seen: set[str] = set()
    for key, query in candidates:
        plain = _unquote(query)
        if not is_variant_useful(plain):
            continue
        canonical = plain.lower()
        if canonical in seen:
            continue
        seen.add(canonical)
        variants.append(QueryVariant(key=key, query=query, plain=plain))
        if len(variants) >= max_variants:
            break
    return variants


class QueryProfiler:
    """Classifies queries as short or generic; both trigger broader search variants."""

    def __init__(self, generic_terms: Iterable[str] = GENERIC_QUERY_TERMS, generic_ratio: float = 0.6) -> None:
        self.generic_terms = frozenset(term.lower() for term in generic_terms)
        self.generic_ratio = generic_ratio

    def profile(self, text: str | None) -> QueryProfile:
        normalized = normalize_search_text(text)
        words = [token.lower() for token in tokenize(strip_punctuation(normalized))]
        short = len(words) <= SHORT_QUERY_TOKENS or len(normalized) < SHORT_QUERY_CHARS
        generic = False
        if words:
            common = sum(1 for word in words if word in self.generic_terms)
            generic = common / len(words) >= self.generic_ratio
        return QueryProfile(token_count=len(words), short=short, generic=generic)

    def build_variants(
        self,
        text: str | None,
        profile: QueryProfile,
        *,
        max_variants: int = 4,
        max_total: int = 6,
    ) -> list[QueryVariant]:
        """Base variants, plus an unquoted broad query and a keyword window when the profile calls for it."""
        variants = build_query_variants(text, max_variants=max_variants)
        if not variants or not profile.needs_adaptive_variants:
            return variants

        normalized = normalize_search_text(text)
        window = " ".join(keyword_tokens(tokenize(strip_punctuation(normalized)), limit=KEYWORD_WINDOW_TOKENS))
        extras = [
            (VariantKey.BROAD_UNQUOTED, normalized),
            (VariantKey.KEYWORD_WINDOW, window),
        ]

        seen = {variant.query.lower() for variant in variants}
        for key, query in extras:
            if len(variants) >= max_total:
                break
            if not is_variant_useful(query) or query.lower() in seen:
                continue
            seen.add(query.lower())
            variants.append(QueryVariant(key=key, query=query, plain=query))

        logger.debug("Adaptive variants for %s query: %s", "short" if profile.short else "generic", [v.key.value for v in variants])
        return variants
