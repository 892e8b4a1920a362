from __future__ import annotations

import logging
import re
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from copyscout.domain.models import Author, RawTweetRecord, SourceResponse
from copyscout.services.source_base import TWEET_URL_PATTERN, UA_BROWSER, check_status, ensure_content

logger = logging.getLogger(__name__)

SEARCH_URL = "https://html.duckduckgo.com/html/"
TITLE_PATTERN = re.compile(r"^(.+?)(?: \(@\w+\))? on (?:Twitter|X)", re.IGNORECASE)


def decode_result_href(href: str) -> str:
    """Unwrap DuckDuckGo's ``/l/?uddg=`` redirect links."""
    if "uddg=" not in href:
        return href
    target = parse_qs(urlparse(href).query).get("uddg")
    return target[0] if target else href


class DuckDuckGoService:
    name = "duckduckgo"
    instances: tuple[str, ...] = ()

    async def search(self, query: str, *, timeout: float = 8.0, instance: str | None = None) -> SourceResponse:
        params = {"q": f"site:twitter.com {query}"}
        headers = {"User-Agent": UA_BROWSER, "Accept-Language": "en-US,en;q=0.9"}
        async with httpx.AsyncClient(timeout=timeout, headers=headers, follow_redirects=True) as client:
            response = await client.get(SEARCH_URL, params=params)
        check_status(response, "DuckDuckGo", self.name)
        soup = BeautifulSoup(ensure_content(response.text, self.name), "html.parser")

        results: list[RawTweetRecord] = []
        for item in soup.select(".result"):
            link = item.select_one(".result__a")
            if link is None:
                continue
            url = decode_result_href(str(link.get("href", "")))
            match = TWEET_URL_PATTERN.search(url)
            if not match:
                continue
            username, tweet_id = match.groups()
            title = link.get_text(" ", strip=True)
            snippet = item.select_one(".result__snippet")
            content = snippet.get_text(" ", strip=True) if snippet else title
            title_match = TITLE_PATTERN.match(title)
            results.append(
                RawTweetRecord(
                    content=content,
                    author=Author(
                        fullname=title_match.group(1) if title_match else username,
                        username=f"@{username}",
                    ),
                    url=f"https://x.com/{username}/status/{tweet_id}",
                    tweet_id=tweet_id,
                    source=self.name,
                )
            )

        logger.debug("DuckDuckGo returned %d tweet links for %r", len(results), query)
        return SourceResponse(results=results, instance="DuckDuckGo")
