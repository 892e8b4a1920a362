from __future__ import annotations

import re
from bisect import bisect_left
from collections.abc import Sequence
from datetime import datetime

from dateutil import parser as date_parser

from copyscout.core.config import PLACEHOLDER_DATE, PRIMARY_SOURCE
from copyscout.domain.models import RawTweetRecord

SIMILARITY_WEIGHT = 60
ENGAGEMENT_WEIGHT = 20
DATE_BONUS = 4
STATS_BONUS = 4
RICH_SOURCE_BONUS = 2
ORIGINALITY_BONUS = 10

STATUS_URL_PATTERN = re.compile(r"https?://(x|twitter)\.com/[^/\s]+/status/\d+", re.IGNORECASE)
QUOTE_MARKER_PATTERN = re.compile(r"\b(QT|QRT|quote tweet|quoted)\b", re.IGNORECASE)


class RankedTweet(RawTweetRecord):
    quality_score: float = 0.0


def parse_tweet_date(value: str | None) -> datetime | None:
    if not value or value == PLACEHOLDER_DATE:
        return None
    try:
        # Nitter titles read "Mar 1, 2024 · 12:00 PM UTC".
        return date_parser.parse(str(value).replace("·", " "))
    except (ValueError, TypeError, OverflowError, date_parser.ParserError):
        return None


def engagement_percentile(engagement: int, sorted_engagements: Sequence[int]) -> float:
    """Rank-based position of ``engagement`` in the sorted distribution, from 0 to 1."""
    if not sorted_engagements:
        return 0.0
    last_index = len(sorted_engagements) - 1
    if last_index <= 0:
        return 1.0 if engagement > 0 else 0.0
    rank = bisect_left(sorted_engagements, engagement)
    return min(rank, last_index) / last_index


def is_original_like(record: RawTweetRecord) -> bool:
    content = record.content.strip()
    retweet_like = record.is_retweet is True or content.startswith("RT @")
    quote_like = record.is_quote is True or (
        bool(STATUS_URL_PATTERN.search(content)) and bool(QUOTE_MARKER_PATTERN.search(content))
    )
    return not retweet_like and not quote_like


def compute_quality_score(record: RawTweetRecord, sorted_engagements: Sequence[int]) -> float:
    similarity = max(0, min(100, record.similarity or 0))
    engagement = max(0, record.stats.engagement)

    metadata = 0
    if parse_tweet_date(record.date) is not None:
        metadata += DATE_BONUS
    if engagement > 0:
        metadata += STATS_BONUS
    if record.source == PRIMARY_SOURCE:
        metadata += RICH_SOURCE_BONUS

    score = (
        similarity / 100 * SIMILARITY_WEIGHT
        + engagement_percentile(engagement, sorted_engagements) * ENGAGEMENT_WEIGHT
        + metadata
        + (ORIGINALITY_BONUS if is_original_like(record) else 0)
    )
    return round(score, 2)


def with_quality_scores(records: Sequence[RawTweetRecord]) -> list[RankedTweet]:
    """Score every record against the engagement distribution of the whole set."""
    engagements = sorted(max(0, record.stats.engagement) for record in records)
    return [
        RankedTweet(**record.model_dump(), quality_score=compute_quality_score(record, engagements))
        for record in records
    ]


def rank_results(records: Sequence[RawTweetRecord]) -> list[RankedTweet]:
    return sorted(with_quality_scores(records), key=lambda item: item.quality_score, reverse=True)
