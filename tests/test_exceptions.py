"""
Tests for custom exception hierarchy in copyscout.core.exceptions.
"""
from __future__ import annotations

import pytest

from copyscout.core.exceptions import (
    APIError,
    ChallengePageError,
    CopyScoutError,
    RateLimitError,
    SourceError,
    TweetUnavailableError,
    ValidationError,
)
from copyscout.services.tweet_fetch_svc import is_unavailable_error, parse_tweet_url


class TestExceptionHierarchy:
    """Verify inheritance relationships in the exception hierarchy."""

    def test_all_exceptions_inherit_from_copy_scout_error(self):
        for exc_cls in (
            APIError, SourceError, ChallengePageError, RateLimitError,
            TweetUnavailableError, ValidationError,
        ):
            assert issubclass(exc_cls, CopyScoutError)

    def test_source_failures_inherit_from_source_error(self):
        for exc_cls in (ChallengePageError, RateLimitError):
            assert issubclass(exc_cls, SourceError)

    def test_copy_scout_error_is_exception(self):
        assert issubclass(CopyScoutError, Exception)


class TestSourceError:
    def test_with_status_code(self):
        err = SourceError("Instance returned 403", source="nitter", status_code=403)
        assert str(err) == "Instance returned 403"
        assert err.source == "nitter"
        assert err.status_code == 403

    def test_without_status_code(self):
        err = SourceError("Network error")
        assert err.status_code is None
        assert err.source is None

    def test_catchable_as_api_error(self):
        with pytest.raises(APIError):
            raise SourceError("fail", status_code=500)


class TestRateLimitError:
    def test_attributes(self):
        err = RateLimitError("duckduckgo", retry_after=30)
        assert err.source == "duckduckgo"
        assert err.retry_after == 30
        assert err.status_code == 429
        assert "rate limit exceeded" in str(err)

    def test_without_retry_after(self):
        assert RateLimitError("bing").retry_after is None


class TestChallengePageError:
    def test_message_names_the_challenge(self):
        err = ChallengePageError("nitter")
        assert "challenge" in str(err)
        assert err.source == "nitter"


class TestValidationError:
    def test_body_carries_only_given_parts(self):
        assert ValidationError("Query is required").to_body() == {"error": "Query is required"}

    def test_body_with_details_and_meta(self):
        err = ValidationError("Query is too short to search", details="more words", meta={"reason": "query_not_searchable"})
        assert err.to_body() == {
            "error": "Query is too short to search",
            "details": "more words",
            "meta": {"reason": "query_not_searchable"},
        }

    def test_tweet_url_parsing_raises(self):
        with pytest.raises(ValidationError, match="URL is required"):
            parse_tweet_url("")
        with pytest.raises(ValidationError, match="Invalid Tweet URL"):
            parse_tweet_url("https://x.com/alice")
        assert parse_tweet_url("https://x.com/alice/status/42?s=20") == "42"


class TestUnavailability:
    def test_tweet_unavailable_reads_as_unavailable(self):
        assert is_unavailable_error(TweetUnavailableError("123")) is True

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Syndication returned 404", True),
            ("Instance returned 403", True),
            ("Tweet content not found", True),
            ("Instance returned 502", False),
            ("timed out", False),
        ],
    )
    def test_status_markers(self, message, expected):
        assert is_unavailable_error(SourceError(message)) is expected
