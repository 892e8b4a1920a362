"""Shared contract and helpers for the upstream search sources."""
from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol

import httpx

from copyscout.core.exceptions import ChallengePageError, RateLimitError, SourceError
from copyscout.domain.models import SourceResponse

UA_BROWSER = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
# Several mirrors gate browser-like agents behind JS challenges but serve
# plain HTML to curl.
UA_CURL = "curl/8.7.1"

TWEET_URL_PATTERN = re.compile(r"(?:x|twitter)\.com/([A-Za-z0-9_]+)/status/(\d+)", re.IGNORECASE)
CHALLENGE_PAGE_PATTERN = re.compile(
    r"Just a moment|Enable JavaScript and cookies to continue|Making sure you're not a bot"
    r"|Project Segfault Authentication|anubis",
    re.IGNORECASE,
)


class SourceClient(Protocol):
    """
    One upstream search source.

    ``instances`` lists mirror base URLs for multi-mirror sources and is empty
    otherwise. ``search`` raises on any failure.
    """

    name: str
    instances: Sequence[str]

    async def search(self, query: str, *, timeout: float, instance: str | None = None) -> SourceResponse: ...


def is_challenge_page(html: str | None) -> bool:
    return not html or bool(CHALLENGE_PAGE_PATTERN.search(html))


def check_status(response: httpx.Response, label: str, source: str) -> None:
    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitError(source, int(retry_after) if retry_after and retry_after.isdigit() else None)
    if response.status_code >= 400:
        raise SourceError(f"{label} returned {response.status_code}", source=source, status_code=response.status_code)


def ensure_content(html: str, source: str) -> str:
    if is_challenge_page(html):
        raise ChallengePageError(source)
    return html


def parse_stat(text: str | None) -> int:
    """Parse counters such as '1,234', '1.2K' or '3M'."""
    if not text:
        return 0
    cleaned = text.strip().replace(",", "")
    try:
        if cleaned.upper().endswith("K"):
            return int(float(cleaned[:-1]) * 1_000)
        if cleaned.upper().endswith("M"):
            return int(float(cleaned[:-1]) * 1_000_000)
        return int(cleaned)
    except ValueError:
        return 0


def to_x_url(url: str) -> str:
    return re.sub(r"^(https?://)(?:www\.|mobile\.)?twitter\.com", r"\1x.com", url.strip())
