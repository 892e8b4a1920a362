from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from copyscout.domain.models import RawTweetRecord, TweetStats
from copyscout.services.canonical_svc import extract_tweet_id

logger = logging.getLogger(__name__)


class TweetDetailClient(Protocol):
    async def fetch_details(self, tweet_id: str, *, timeout: float) -> RawTweetRecord: ...


@dataclass
class BackfillResult:
    results: list[RawTweetRecord]
    enriched: int = 0


def needs_backfill(record: RawTweetRecord) -> bool:
    return not record.stats.has_engagement or not record.has_real_date


def _fill(current: int | None, fetched: int | None) -> int | None:
    return current if current or not fetched else fetched


def merge_metrics(current: RawTweetRecord, fetched: RawTweetRecord) -> RawTweetRecord:
    """Fill zero or placeholder fields from ``fetched``; existing data is never replaced."""
    stats = current.stats
    merged_stats = TweetStats(
        replies=_fill(stats.replies, fetched.stats.replies),
        retweets=_fill(stats.retweets, fetched.stats.retweets),
        likes=_fill(stats.likes, fetched.stats.likes),
        views=_fill(stats.views, fetched.stats.views),
        bookmarks=_fill(stats.bookmarks, fetched.stats.bookmarks),
    )
    date = current.date if current.has_real_date or not fetched.has_real_date else fetched.date
    return current.model_copy(update={"stats": merged_stats, "date": date})


class MetricsBackfill:
    """
    Fills missing engagement counts and dates for a bounded number of results.

    Each tweet id is looked up once per call: first through the fast lookup,
    then through the heavier detail lookup; when both fail the result is left
    as it was.
    """

    def __init__(self, fast_client: TweetDetailClient, detail_client: TweetDetailClient) -> None:
        self.fast_client = fast_client
        self.detail_client = detail_client

    @staticmethod
    def select_targets(results: Sequence[RawTweetRecord], max_items: int) -> list[tuple[int, str]]:
        targets: list[tuple[int, str]] = []
        for index, record in enumerate(results):
            if len(targets) >= max_items:
                break
            tweet_id = extract_tweet_id(record.tweet_id or record.url)
            if tweet_id and needs_backfill(record):
                targets.append((index, tweet_id))
        return targets

    async def _lookup(self, tweet_id: str, timeout: float) -> RawTweetRecord | None:
        try:
            return await asyncio.wait_for(self.fast_client.fetch_details(tweet_id, timeout=timeout), timeout)
        except Exception as exc:
            logger.debug("Fast metrics lookup failed for %s: %s", tweet_id, exc)
        try:
            return await asyncio.wait_for(self.detail_client.fetch_details(tweet_id, timeout=timeout), timeout)
        except Exception as exc:
            logger.debug("Detail metrics lookup failed for %s: %s", tweet_id, exc)
            return None

    async def backfill(
        self,
        results: Sequence[RawTweetRecord],
        *,
        max_items: int = 10,
        concurrency: int = 4,
        timeout: float = 3.5,
    ) -> BackfillResult:
        merged = list(results)
        targets = self.select_targets(merged, max_items)
        if not targets:
            return BackfillResult(results=merged)

        queue: asyncio.Queue[str] = asyncio.Queue()
        for tweet_id in dict.fromkeys(tweet_id for _, tweet_id in targets):
            queue.put_nowait(tweet_id)
        fetched: dict[str, RawTweetRecord | None] = {}

        async def worker() -> None:
            while True:
                try:
                    tweet_id = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                fetched[tweet_id] = await self._lookup(tweet_id, timeout)

        await asyncio.gather(*(worker() for _ in range(min(concurrency, queue.qsize()))))

        enriched = 0
        for index, tweet_id in targets:
            details = fetched.get(tweet_id)
            if details is None:
                continue
            updated = merge_metrics(merged[index], details)
            if updated != merged[index]:
                enriched += 1
            merged[index] = updated
        return BackfillResult(results=merged, enriched=enriched)
