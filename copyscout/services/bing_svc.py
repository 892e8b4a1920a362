from __future__ import annotations

import logging
from xml.etree.ElementTree import ParseError

import httpx
from defusedxml import ElementTree

from copyscout.core.exceptions import SourceError
from copyscout.domain.models import Author, RawTweetRecord, SourceResponse
from copyscout.services.source_base import TWEET_URL_PATTERN, UA_BROWSER, check_status

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.bing.com/search"


class BingRssService:
    """Bing web search through its RSS output, restricted to x.com status pages."""

    name = "bing"
    instances: tuple[str, ...] = ()

    async def search(self, query: str, *, timeout: float = 8.0, instance: str | None = None) -> SourceResponse:
        params = {"format": "rss", "q": f"site:x.com {query} status"}
        async with httpx.AsyncClient(timeout=timeout, headers={"User-Agent": UA_BROWSER}) as client:
            response = await client.get(SEARCH_URL, params=params)
        check_status(response, "Bing RSS", self.name)

        try:
            root = ElementTree.fromstring(response.text)
        except ParseError as exc:
            raise SourceError(f"Bing RSS returned malformed XML: {exc}", source=self.name) from exc

        results: list[RawTweetRecord] = []
        for item in root.iter("item"):
            link = (item.findtext("link") or "").split("?", 1)[0]
            match = TWEET_URL_PATTERN.search(link)
            if not match:
                continue
            username, tweet_id = match.groups()
            title = (item.findtext("title") or "").strip()
            description = (item.findtext("description") or "").strip()
            results.append(
                RawTweetRecord(
                    content=description or title,
                    author=Author(fullname=title.split(" on X", 1)[0] or username, username=f"@{username}"),
                    url=f"https://x.com/{username}/status/{tweet_id}",
                    tweet_id=tweet_id,
                    source=self.name,
                )
            )

        if not results:
            raise SourceError("Bing RSS returned no parseable X status results", source=self.name)
        return SourceResponse(results=results, instance="Bing RSS")
