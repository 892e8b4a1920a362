"""Cross-source canonicalization and same-author repost detection."""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from copyscout.core.config import PRIMARY_SOURCE
from copyscout.domain.models import RawTweetRecord
from copyscout.services.query_svc import STRIP_PUNCT, WHITESPACE, normalize_search_text

logger = logging.getLogger(__name__)

STATUS_ID_PATTERN = re.compile(r"/status/(\d+)")

SimilarityFn = Callable[[str, str], int]


def extract_tweet_id(url_or_id: str | None) -> str | None:
    value = str(url_or_id or "").strip()
    if value.isdigit():
        return value
    match = STATUS_ID_PATTERN.search(value)
    return match.group(1) if match else None


def normalize_username(username: str | None) -> str:
    return str(username or "").strip().lstrip("@").lower()


def normalize_content(content: str | None) -> str:
    return normalize_search_text(content).lower()


def content_hash(content: str | None) -> str:
    return WHITESPACE.sub(" ", STRIP_PUNCT.sub("", normalize_content(content))).strip()


def identity_key(record: RawTweetRecord) -> str:
    tweet_id = extract_tweet_id(record.url) or record.tweet_id
    if tweet_id:
        return f"id:{tweet_id}"
    username = record.author.username.lower() if record.author.username else "unknown"
    return f"fallback:{username}:{content_hash(record.content)}"


def richness(record: RawTweetRecord) -> int:
    """Completeness heuristic used to pick the best of several records for one tweet."""
    score = 0
    if record.source == PRIMARY_SOURCE:
        score += 20
    if record.has_real_date:
        score += 5
    if record.author.avatar:
        score += 3
    if record.stats.likes > 0:
        score += 2
    if record.stats.retweets > 0:
        score += 2
    if record.stats.replies > 0:
        score += 2
    return score


def canonicalize(records: Iterable[RawTweetRecord]) -> list[RawTweetRecord]:
    """
    Collapse raw records into one record per physical tweet, in first-seen order.

    A later record replaces the kept one only when its richness is strictly
    higher; the kept ``matched_by`` carries over when the replacement has none.
    """
    by_key: dict[str, RawTweetRecord] = {}
    for record in records:
        candidate = record.model_copy(update={"tweet_id": extract_tweet_id(record.url) or record.tweet_id})
        key = identity_key(candidate)
        current = by_key.get(key)
        if current is None:
            by_key[key] = candidate
            continue
        if richness(candidate) > richness(current):
            by_key[key] = candidate.model_copy(update={"matched_by": candidate.matched_by or current.matched_by})
    return list(by_key.values())


@dataclass(frozen=True)
class SourceTweetIdentity:
    """The tweet the user is searching copies of."""

    tweet_id: str | None = None
    username: str | None = None
    content: str | None = None

    @property
    def normalized_username(self) -> str:
        return normalize_username(self.username)

    @property
    def normalized_content(self) -> str:
        return normalize_content(self.content)


@dataclass
class Classification:
    external: list[RawTweetRecord] = field(default_factory=list)
    self_duplicates: list[RawTweetRecord] = field(default_factory=list)
    dropped: int = 0

    @property
    def excluded_count(self) -> int:
        return self.dropped + len(self.self_duplicates)


class SelfDuplicateClassifier:
    """
    Splits canonical results into external copies and the original author's reposts.

    Rules, first match wins:
      * same id as the source tweet: dropped, it is the source itself;
      * same author and same normalized text under another id: self-duplicate at 100;
      * same author and similarity to the query at or above the threshold:
        self-duplicate at its measured similarity.
    """

    def __init__(self, similarity_fn: SimilarityFn, threshold: int = 90) -> None:
        self.similarity_fn = similarity_fn
        self.threshold = threshold

    def classify(self, results: Iterable[RawTweetRecord], source: SourceTweetIdentity, query: str) -> Classification:
        outcome = Classification()
        source_user = source.normalized_username
        source_content = source.normalized_content

        for result in results:
            if source.tweet_id and result.tweet_id == source.tweet_id:
                outcome.dropped += 1
                continue

            if source_user and normalize_username(result.author.username) == source_user:
                if source_content and normalize_content(result.content) == source_content and result.tweet_id != source.tweet_id:
                    outcome.self_duplicates.append(result.model_copy(update={"similarity": 100}))
                    continue
                similarity = self.similarity_fn(result.content, query)
                if similarity >= self.threshold:
                    outcome.self_duplicates.append(result.model_copy(update={"similarity": similarity}))
                    continue

            outcome.external.append(result)

        if outcome.excluded_count:
            logger.debug("Excluded %d results (%d self-duplicates)", outcome.excluded_count, len(outcome.self_duplicates))
        return outcome
