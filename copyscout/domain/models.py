from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from copyscout.core.config import PLACEHOLDER_DATE


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class VariantKey(str, Enum):
    EXACT_QUOTED = "exactQuoted"
    NORMALIZED_QUOTED = "normalizedQuoted"
    CORE_WINDOW_QUOTED = "coreWindowQuoted"
    KEYWORD_FALLBACK = "keywordFallback"
    BROAD_UNQUOTED = "broadUnquoted"
    KEYWORD_WINDOW = "keywordWindow"


class QueryVariant(CamelModel):
    """One reformulation of the user's text, ordered most literal first."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    key: VariantKey
    query: str
    plain: str

    @property
    def quoted(self) -> bool:
        return self.query.startswith('"') and self.query.endswith('"')


class Author(CamelModel):
    fullname: str = ""
    username: str = ""
    avatar: str | None = None


class TweetStats(CamelModel):
    replies: int = 0
    retweets: int = 0
    likes: int = 0
    views: int | None = None
    bookmarks: int | None = None

    @property
    def engagement(self) -> int:
        return self.likes + self.retweets + self.replies

    @property
    def has_engagement(self) -> bool:
        return any((self.replies, self.retweets, self.likes, self.views or 0, self.bookmarks or 0))


class RawTweetRecord(CamelModel):
    """
    A tweet as returned by any source client.

    Absent fields are defaulted by the client that built the record: zero stats,
    ``None`` avatar, and the ``"Unknown"`` date sentinel.
    """

    content: str
    author: Author = Field(default_factory=Author)
    url: str = ""
    date: str = PLACEHOLDER_DATE
    relative_date: str = "Recently found"
    stats: TweetStats = Field(default_factory=TweetStats)
    is_retweet: bool | None = None
    is_quote: bool | None = None
    source: str = ""
    matched_by: str | None = None
    tweet_id: str | None = None
    similarity: int | None = None

    @property
    def has_real_date(self) -> bool:
        return bool(self.date) and self.date != PLACEHOLDER_DATE


class SourceResponse(CamelModel):
    results: list[RawTweetRecord] = Field(default_factory=list)
    instance: str | None = None


class HealthState(CamelModel):
    """Reputation of one source or mirror instance. Timestamps are epoch seconds."""

    score: int = 0
    cooldown_until: float = 0.0
    last_success_at: float | None = None
    last_failure_at: float | None = None

    def is_cooling(self, now: float | None = None) -> bool:
        return self.cooldown_until > (time.time() if now is None else now)


class SearchRequest(CamelModel):
    query: str | None = None
    query_input_type: str = "text"
    exclude_tweet_id: str | None = None
    exclude_username: str | None = None
    exclude_content: str | None = None


class TweetFetchRequest(CamelModel):
    url: str | None = None


class QueryProfile(CamelModel):
    token_count: int = 0
    short: bool = False
    generic: bool = False

    @property
    def needs_adaptive_variants(self) -> bool:
        return self.short or self.generic


class SourceCounter(CamelModel):
    attempts: int = 0
    failures: int = 0
    cache_hits: int = 0


class VariantTrace(CamelModel):
    key: str
    query_length: int
    source_attempts: dict[str, int] = Field(default_factory=dict)
    hits: int = 0
    winner: str | None = None


class SearchMeta(CamelModel):
    """Per-request diagnostics. Callers may read ``reason``; everything else is for debugging."""

    query_input_type: str = "text"
    exclude_tweet_id: str | None = None
    exclude_username: str | None = None
    query_profile: QueryProfile = Field(default_factory=QueryProfile)
    variants_tried: list[VariantTrace] = Field(default_factory=list)
    sources: dict[str, SourceCounter] = Field(default_factory=dict)
    cache_hit: bool = False
    source_cache_hits: int = 0
    timing_ms: int = 0
    early_stopped: bool = False
    deadline_reached: bool = False
    excluded_count: int = 0
    self_duplicate_count: int = 0
    metrics_enriched: int = 0
    reason: str = "exhausted_variants"

    def counter(self, source: str) -> SourceCounter:
        return self.sources.setdefault(source, SourceCounter())


@dataclass
class PipelineOutcome:
    status: int
    body: dict[str, Any] = field(default_factory=dict)
