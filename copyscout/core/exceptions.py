"""Custom exceptions for Copy Scout."""

from __future__ import annotations

from typing import Any


class CopyScoutError(Exception):
    """Base exception for all Copy Scout errors."""
    pass


class APIError(CopyScoutError):
    """Base exception for upstream failures."""
    pass


class SourceError(APIError):
    """Raised when a search source or lookup endpoint fails."""

    def __init__(self, message: str, source: str | None = None, status_code: int | None = None):
        self.source = source
        self.status_code = status_code
        super().__init__(message)


class ChallengePageError(SourceError):
    """Raised when an upstream serves an anti-bot or auth challenge instead of content."""

    def __init__(self, source: str | None = None):
        super().__init__("Instance returned anti-bot or auth challenge page", source=source)


class RateLimitError(SourceError):
    """Raised when an upstream answers 429."""

    def __init__(self, source: str, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(f"{source} rate limit exceeded (429)", source=source, status_code=429)


class TweetUnavailableError(APIError):
    """Raised when a tweet is deleted, protected, or otherwise not retrievable."""

    def __init__(self, tweet_id: str, detail: str = "not found"):
        self.tweet_id = tweet_id
        super().__init__(f"Tweet {tweet_id} unavailable: {detail}")


class ValidationError(CopyScoutError):
    """Raised when request input cannot be searched or fetched; maps to a 400."""

    def __init__(self, message: str, details: str | None = None, meta: dict[str, Any] | None = None):
        self.details = details
        self.meta = meta
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": str(self)}
        if self.details is not None:
            body["details"] = self.details
        if self.meta is not None:
            body["meta"] = self.meta
        return body
