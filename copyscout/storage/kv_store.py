"""Key-value store abstraction: Redis when configured, in-memory otherwise."""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as redis

from copyscout.core.config import Settings

logger = logging.getLogger(__name__)

MAX_MEMORY_ENTRIES = 1000


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...

    async def incr(self, key: str) -> int: ...


class InMemoryKeyValueStore:
    """
    Process-local store with TTLs and a bounded size.

    Values are copied through JSON on write so callers observe the same
    semantics as the Redis-backed store.
    """

    backend = "memory"

    def __init__(self, max_entries: int = MAX_MEMORY_ENTRIES, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_entries = max_entries
        self.clock = clock
        self._entries: dict[str, tuple[str, float | None]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self._entries[key]
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expires_at = self.clock() + ttl_seconds if ttl_seconds else None
        self._entries.pop(key, None)
        self._entries[key] = (json.dumps(value), expires_at)
        self._evict()

    async def incr(self, key: str) -> int:
        current = await self.get(key)
        try:
            value = int(current or 0) + 1
        except (TypeError, ValueError):
            value = 1
        expires_at = self._entries[key][1] if key in self._entries else None
        self._entries[key] = (json.dumps(value), expires_at)
        self._evict()
        return value

    def _evict(self) -> None:
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]


class RedisKeyValueStore:
    """Redis-backed store; any Redis error falls back to an embedded in-memory store."""

    backend = "redis"

    def __init__(self, client: redis.Redis, fallback: InMemoryKeyValueStore | None = None) -> None:
        self.client = client
        self.fallback = fallback or InMemoryKeyValueStore()

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self.client.get(key)
        except Exception as exc:
            logger.warning("Redis get failed for %s; using memory: %s", key, exc)
            return await self.fallback.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        payload = json.dumps(value)
        try:
            if ttl_seconds:
                await self.client.set(key, payload, ex=ttl_seconds)
            else:
                await self.client.set(key, payload)
        except Exception as exc:
            logger.warning("Redis set failed for %s; using memory: %s", key, exc)
            await self.fallback.set(key, value, ttl_seconds)

    async def incr(self, key: str) -> int:
        try:
            return int(await self.client.incr(key))
        except Exception as exc:
            logger.warning("Redis incr failed for %s; using memory: %s", key, exc)
            return await self.fallback.incr(key)

    async def close(self) -> None:
        await self.client.aclose()


def build_kv_store(settings: Settings) -> KeyValueStore:
    if settings.REDIS_URL:
        return RedisKeyValueStore.from_url(settings.REDIS_URL)
    return InMemoryKeyValueStore()
