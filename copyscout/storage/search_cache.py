"""Response and per-source caches on top of the key-value store."""
from __future__ import annotations

import hashlib
import logging
from typing import Any

from copyscout.domain.models import SourceResponse
from copyscout.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def _digest(*parts: str | None) -> str:
    joined = "|".join(part or "" for part in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


class ResponseCache:
    """Memoizes whole pipeline response bodies. Store failures read as misses and are never raised."""

    KEY_PREFIX = "search:v1:"

    def __init__(self, store: KeyValueStore, ttl_seconds: int = 900) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    def key_for(
        self,
        normalized_query: str,
        query_input_type: str,
        exclude_tweet_id: str | None,
        exclude_username: str | None,
        exclude_content: str | None,
    ) -> str:
        return self.KEY_PREFIX + _digest(
            normalized_query.lower(),
            query_input_type,
            exclude_tweet_id,
            exclude_username,
            exclude_content,
        )

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            cached = await self.store.get(key)
        except Exception as exc:
            logger.warning("Response cache read failed: %s", exc)
            return None
        return cached if isinstance(cached, dict) else None

    async def set(self, key: str, body: dict[str, Any]) -> None:
        await self.store.set(key, body, self.ttl_seconds)


class SourceCache:
    """Memoizes one source's non-empty raw output for one query string."""

    KEY_PREFIX = "source:v1:"

    def __init__(self, store: KeyValueStore, ttl_seconds: int = 600) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    def key_for(self, source: str, query: str) -> str:
        return f"{self.KEY_PREFIX}{source}:{_digest(query)}"

    async def get(self, source: str, query: str) -> SourceResponse | None:
        try:
            cached = await self.store.get(self.key_for(source, query))
        except Exception as exc:
            logger.warning("Source cache read failed for %s: %s", source, exc)
            return None
        if not isinstance(cached, dict):
            return None
        try:
            response = SourceResponse.model_validate(cached)
        except ValueError:
            return None
        return response if response.results else None

    async def set(self, source: str, query: str, response: SourceResponse) -> None:
        if not response.results:
            return
        await self.store.set(self.key_for(source, query), response.to_payload(), self.ttl_seconds)
