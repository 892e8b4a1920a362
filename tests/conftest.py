"""
Shared stubs for the search pipeline tests.
"""
from __future__ import annotations

from collections.abc import Callable

import pytest

from copyscout.core.config import Settings
from copyscout.core.tasks import DetachedTaskSpawner
from copyscout.domain.models import Author, RawTweetRecord, SourceResponse
from copyscout.services.health_svc import InMemoryHealthStore
from copyscout.services.search_logic import SearchDependencies
from copyscout.storage.kv_store import InMemoryKeyValueStore
from copyscout.storage.search_cache import ResponseCache


class StubSource:
    """Source client double that records every call."""

    def __init__(
        self,
        name: str,
        results: list[RawTweetRecord] | None = None,
        error: Exception | None = None,
        instances: tuple[str, ...] = (),
        on_call: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self.instances = instances
        self.results = results or []
        self.error = error
        self.on_call = on_call
        self.calls: list[tuple[str, str | None]] = []

    async def search(self, query: str, *, timeout: float, instance: str | None = None) -> SourceResponse:
        self.calls.append((query, instance))
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return SourceResponse(results=list(self.results), instance=instance or self.name)


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_tweet(
    tweet_id: str | None,
    username: str = "@someone",
    content: str = "hello world this is long enough",
    **fields,
) -> RawTweetRecord:
    url = f"https://x.com/{username.lstrip('@')}/status/{tweet_id}" if tweet_id else ""
    return RawTweetRecord(
        content=content,
        author=Author(fullname=username.lstrip("@").title(), username=username),
        url=url,
        **fields,
    )


@pytest.fixture
def tweet():
    """Factory for raw tweet records."""
    return make_tweet


@pytest.fixture
def stub_source():
    """Factory for recording source doubles."""
    return StubSource


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def spawner():
    return DetachedTaskSpawner()


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def test_settings():
    return Settings(
        REDIS_URL=None,
        SEARCH_CACHE_ENABLED=True,
        SEARCH_HEALTH_LOG=False,
    )


@pytest.fixture
def make_deps(spawner, kv_store, test_settings):
    """Build SearchDependencies around the given sources with in-memory stores."""

    def build(primary, fallbacks=(), **overrides) -> SearchDependencies:
        options = {
            "primary": primary,
            "fallbacks": list(fallbacks),
            "health": InMemoryHealthStore(),
            "spawner": spawner,
            "settings": test_settings,
            "response_cache": ResponseCache(kv_store),
            "source_cache": None,
            "metrics": None,
        }
        options.update(overrides)
        return SearchDependencies(**options)

    return build
