from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup, Tag

from copyscout.core.config import PLACEHOLDER_DATE, PRIMARY_SOURCE
from copyscout.core.exceptions import SourceError, TweetUnavailableError
from copyscout.domain.models import Author, RawTweetRecord, SourceResponse, TweetStats
from copyscout.services.health_svc import HealthStore, prioritize
from copyscout.services.source_base import UA_CURL, check_status, ensure_content, parse_stat

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": UA_CURL,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.8",
}


class NitterService:
    """
    Nitter mirror client, the primary search source.

    Mirrors are interchangeable; callers either pin an ``instance`` or let the
    client walk its configured list until one answers.
    """

    name = PRIMARY_SOURCE

    def __init__(self, instances: Sequence[str], health: HealthStore | None = None) -> None:
        self.instances = [instance.rstrip("/") for instance in instances]
        self.health = health

    async def _get(self, url: str, timeout: float) -> str:
        async with httpx.AsyncClient(timeout=timeout, headers=HEADERS, follow_redirects=True) as client:
            response = await client.get(url)
        check_status(response, "Instance", self.name)
        return ensure_content(response.text, self.name)

    @staticmethod
    def _text(element: Tag, selector: str) -> str:
        found = element.select_one(selector)
        return found.get_text(" ", strip=True) if found else ""

    @staticmethod
    def _stat(stats: Tag | None, icon: str) -> int:
        if stats is None:
            return 0
        found = stats.select_one(f".{icon}")
        return parse_stat(found.parent.get_text(strip=True)) if found and found.parent else 0

    def _parse_item(self, element: Tag, instance: str) -> RawTweetRecord | None:
        content = self._text(element, ".tweet-content")
        if not content:
            return None

        date_link = element.select_one(".tweet-date a")
        relative_date = self._text(element, ".tweet-date")
        date = (date_link.get("title") if date_link else None) or relative_date or PLACEHOLDER_DATE

        link = element.select_one(".tweet-link") or date_link
        href = str(link.get("href", "")) if link else ""
        path = href.split("#", 1)[0]

        avatar_img = element.select_one(".avatar img") or element.select_one("img.avatar")
        avatar = str(avatar_img.get("src", "")) if avatar_img else ""
        if avatar and not avatar.startswith("http"):
            avatar = f"{instance}{avatar}"

        stats = element.select_one(".tweet-stats")
        return RawTweetRecord(
            content=content,
            author=Author(
                fullname=self._text(element, ".fullname"),
                username=self._text(element, ".username"),
                avatar=avatar or None,
            ),
            date=str(date),
            relative_date=relative_date or "Recently found",
            url=f"https://x.com{path}" if path else "",
            stats=TweetStats(
                replies=self._stat(stats, "icon-comment"),
                retweets=self._stat(stats, "icon-retweet"),
                likes=self._stat(stats, "icon-heart"),
                views=self._stat(stats, "icon-views") or None,
            ),
            is_retweet=element.select_one(".retweet-header") is not None,
            is_quote=element.select_one(".quote") is not None,
            source=self.name,
        )

    async def _search_instance(self, instance: str, query: str, timeout: float) -> SourceResponse:
        html = await self._get(f"{instance}/search?f=tweets&q={quote(query)}", timeout)
        soup = BeautifulSoup(html, "html.parser")

        tweets = [
            record
            for record in (self._parse_item(item, instance) for item in soup.select(".timeline-item"))
            if record is not None
        ]
        if not tweets and soup.select_one(".timeline-none") is None:
            raise SourceError(
                "No tweets found and no empty state detected (possible rate limit or structure change)",
                source=self.name,
            )
        return SourceResponse(results=tweets, instance=instance)

    async def search(self, query: str, *, timeout: float = 8.0, instance: str | None = None) -> SourceResponse:
        if instance:
            return await self._search_instance(instance.rstrip("/"), query, timeout)

        last_error: Exception | None = None
        for candidate in self.instances:
            try:
                return await self._search_instance(candidate, query, timeout)
            except (SourceError, httpx.HTTPError) as exc:
                logger.warning("Nitter instance %s failed: %s", candidate, exc)
                last_error = exc
        raise SourceError(f"All Nitter instances failed. Last error: {last_error}", source=self.name)

    async def ordered_instances(self) -> list[str]:
        """Mirrors healthiest first; cooling ones stay in the list but go last."""
        if self.health is None:
            return list(self.instances)
        keys = {f"{self.name}:{instance}": instance for instance in self.instances}
        states = await self.health.get_many(list(keys))
        return [keys[key] for key in prioritize(list(keys), states, time.time(), skip_cooling=False)]

    async def _fetch_main_tweet(self, url: str, tweet_id: str, instance: str, timeout: float) -> RawTweetRecord:
        html = await asyncio.wait_for(self._get(url, timeout), timeout)
        main = BeautifulSoup(html, "html.parser").select_one(".main-tweet")
        record = self._parse_item(main, instance) if main else None
        if record is None:
            raise TweetUnavailableError(tweet_id, "tweet content not found")
        return record.model_copy(update={"tweet_id": tweet_id})

    async def get_tweet(self, tweet_id: str, *, timeout: float = 8.0) -> RawTweetRecord:
        """
        Load one tweet's main card from the first mirror that serves it.

        ``timeout`` bounds the whole walk. Each mirror gets an equal share of
        the time left, and a mirror that times out or refuses the connection
        is not asked for its alternate path.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        instances = await self.ordered_instances()
        last_error: BaseException | None = None
        for position, instance in enumerate(instances):
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            share = remaining / (len(instances) - position)
            for url in (f"{instance}/i/status/{tweet_id}", f"{instance}/status/{tweet_id}"):
                call_timeout = min(share, deadline - loop.time())
                if call_timeout <= 0:
                    break
                try:
                    return await self._fetch_main_tweet(url, tweet_id, instance, call_timeout)
                except (httpx.TransportError, asyncio.TimeoutError) as exc:
                    logger.info("Tweet lookup via %s failed: %r", url, exc)
                    last_error = exc
                    break
                except (SourceError, TweetUnavailableError, httpx.HTTPError) as exc:
                    logger.info("Tweet lookup via %s failed: %s", url, exc)
                    last_error = exc
        raise SourceError(f"All Nitter instances failed to fetch tweet. Last error: {last_error!r}", source=self.name)

    async def fetch_details(self, tweet_id: str, *, timeout: float = 5.0) -> RawTweetRecord:
        return await self.get_tweet(tweet_id, timeout=timeout)
