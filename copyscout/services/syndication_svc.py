from __future__ import annotations

import logging
import re
from typing import Any

import httpx
from bs4 import BeautifulSoup

from copyscout.core.config import PLACEHOLDER_DATE
from copyscout.core.exceptions import SourceError
from copyscout.core.resilience import retry_with_backoff
from copyscout.domain.models import Author, RawTweetRecord, TweetStats
from copyscout.services.source_base import UA_CURL

logger = logging.getLogger(__name__)

SYNDICATION_URL = "https://cdn.syndication.twimg.com/tweet-result"
OEMBED_URL = "https://publish.twitter.com/oembed"
AUTHOR_URL_PATTERN = re.compile(r"(?:x|twitter)\.com/([^/?#]+)", re.IGNORECASE)

HEADERS = {"User-Agent": UA_CURL, "Accept": "application/json,text/plain,*/*"}


def _clean(value: Any) -> str:
    return " ".join(str(value or "").split())


def _count(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class SyndicationService:
    """
    Single-tweet lookups through Twitter's public embed endpoints.

    ``fetch_details`` is the fast metrics lookup used by the backfill;
    ``fetch_oembed`` only recovers author and text, and backs up tweet fetches.
    """

    name = "syndication"

    @retry_with_backoff(retries=1, delay=0.25)
    async def _get_json(self, url: str, params: dict[str, str], timeout: float) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=timeout, headers=HEADERS) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        return data if isinstance(data, dict) else {}

    async def _fetch(self, label: str, url: str, params: dict[str, str], timeout: float) -> dict[str, Any]:
        try:
            return await self._get_json(url, params, timeout)
        except httpx.HTTPStatusError as exc:
            raise SourceError(
                f"{label} returned {exc.response.status_code}",
                source=self.name,
                status_code=exc.response.status_code,
            ) from exc
        except ValueError as exc:
            raise SourceError(f"{label} returned invalid JSON", source=self.name) from exc

    async def fetch_details(self, tweet_id: str, *, timeout: float = 5.0) -> RawTweetRecord:
        data = await self._fetch("Syndication", SYNDICATION_URL, {"id": tweet_id, "lang": "en"}, timeout)
        user = data.get("user") or {}
        username = str(user.get("screen_name") or data.get("screen_name") or "").lstrip("@")
        content = _clean(data.get("text") or data.get("full_text"))
        if not content or not username:
            raise SourceError("Syndication payload missing tweet content", source=self.name)

        return RawTweetRecord(
            content=content,
            author=Author(
                fullname=_clean(user.get("name") or data.get("name") or username),
                username=f"@{username}",
                avatar=user.get("profile_image_url_https"),
            ),
            url=f"https://x.com/{username}/status/{tweet_id}",
            date=data.get("created_at") or PLACEHOLDER_DATE,
            stats=TweetStats(
                replies=_count(data.get("reply_count", data.get("conversation_count"))),
                retweets=_count(data.get("retweet_count")),
                likes=_count(data.get("favorite_count")),
            ),
            source=self.name,
            tweet_id=tweet_id,
        )

    async def fetch_oembed(self, tweet_id: str, *, timeout: float = 5.0) -> RawTweetRecord:
        params = {"omit_script": "1", "dnt": "true", "url": f"https://x.com/i/status/{tweet_id}"}
        data = await self._fetch("oEmbed", OEMBED_URL, params, timeout)
        content = _clean(BeautifulSoup(f"<div>{data.get('html') or ''}</div>", "html.parser").get_text(" "))
        match = AUTHOR_URL_PATTERN.search(str(data.get("author_url") or ""))
        username = match.group(1).lstrip("@") if match else ""
        if not content or not username:
            raise SourceError("oEmbed payload missing tweet content", source=self.name)

        return RawTweetRecord(
            content=content,
            author=Author(fullname=_clean(data.get("author_name")) or username, username=f"@{username}"),
            url=f"https://x.com/{username}/status/{tweet_id}",
            source="oembed",
            tweet_id=tweet_id,
        )
