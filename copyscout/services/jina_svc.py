from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from copyscout.core.exceptions import SourceError
from copyscout.domain.models import Author, RawTweetRecord, SourceResponse
from copyscout.services.source_base import TWEET_URL_PATTERN, UA_CURL, check_status

logger = logging.getLogger(__name__)

READER_URL = "https://r.jina.ai/http://x.com/search?q={query}&src=typed_query&f=live"
SNIPPET_RADIUS = 140


class JinaMirrorService:
    """
    Reads X's live search through the r.jina.ai text mirror.

    The mirror returns flattened page text, so tweets are recovered by scanning
    for status links and taking the surrounding text as content.
    """

    name = "jina"
    instances: tuple[str, ...] = ()

    async def search(self, query: str, *, timeout: float = 8.0, instance: str | None = None) -> SourceResponse:
        async with httpx.AsyncClient(timeout=timeout, headers={"User-Agent": UA_CURL}) as client:
            response = await client.get(READER_URL.format(query=quote(query)))
        check_status(response, "Jina mirror", self.name)
        text = response.text

        seen: set[str] = set()
        results: list[RawTweetRecord] = []
        for match in TWEET_URL_PATTERN.finditer(text):
            username, tweet_id = match.groups()
            if tweet_id in seen:
                continue
            seen.add(tweet_id)
            start = max(0, match.start() - SNIPPET_RADIUS)
            snippet = " ".join(text[start:match.end() + SNIPPET_RADIUS].split())
            results.append(
                RawTweetRecord(
                    content=snippet,
                    author=Author(fullname=username, username=f"@{username}"),
                    url=f"https://x.com/{username}/status/{tweet_id}",
                    tweet_id=tweet_id,
                    source=self.name,
                )
            )

        if not results:
            raise SourceError("Jina mirror returned no tweet links", source=self.name)
        return SourceResponse(results=results, instance="Jina Mirror")
