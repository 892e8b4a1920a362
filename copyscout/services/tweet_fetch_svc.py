from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from copyscout.core.exceptions import ValidationError
from copyscout.domain.models import PipelineOutcome, RawTweetRecord, TweetFetchRequest
from copyscout.services.canonical_svc import STATUS_ID_PATTERN

logger = logging.getLogger(__name__)

TweetLookup = Callable[[str], Awaitable[RawTweetRecord]]

UNAVAILABLE_MARKERS = ("returned 403", "returned 404", "not found")
UNAVAILABLE_MESSAGE = (
    "Could not fetch this tweet automatically (it may be deleted, protected, or temporarily blocked). "
    "Paste the tweet text directly."
)


def is_unavailable_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in UNAVAILABLE_MARKERS)


def parse_tweet_url(url: str | None) -> str:
    if not url:
        raise ValidationError("URL is required")
    match = STATUS_ID_PATTERN.search(url)
    if not match:
        raise ValidationError("Invalid Tweet URL")
    return match.group(1)


def tweet_payload(record: RawTweetRecord) -> dict[str, Any]:
    return {
        "content": record.content,
        "author": record.author.fullname,
        "username": record.author.username,
        "avatar": record.author.avatar,
        "date": record.date,
        "url": record.url,
        "source": record.source,
    }


async def run_tweet_fetch_pipeline(request: TweetFetchRequest, lookups: Sequence[TweetLookup]) -> PipelineOutcome:
    """
    Resolve a tweet URL to the tweet's author and text.

    ``lookups`` are tried in order; the first that succeeds wins. When all of
    them fail and any of them reported the tweet as missing or forbidden, the
    answer is an "unavailable" 200 rather than a 500.
    """
    try:
        tweet_id = parse_tweet_url(request.url)
    except ValidationError as exc:
        return PipelineOutcome(400, exc.to_body())

    errors: list[Exception] = []
    for lookup in lookups:
        try:
            record = await lookup(tweet_id)
        except Exception as exc:
            logger.warning("Tweet lookup failed for %s: %s", tweet_id, exc)
            errors.append(exc)
            continue
        return PipelineOutcome(200, {"tweet": tweet_payload(record), "tweetId": tweet_id})

    if not errors or any(is_unavailable_error(exc) for exc in errors):
        return PipelineOutcome(200, {
            "tweet": None,
            "tweetId": tweet_id,
            "unavailable": True,
            "reason": "tweet_unavailable",
            "message": UNAVAILABLE_MESSAGE,
        })
    return PipelineOutcome(500, {"error": "Failed to fetch tweet", "details": str(errors[-1]) or "Unknown error"})
