"""
Source health registry.

Each upstream source, and each mirror instance of the multi-mirror source, has a
bounded reputation score and an optional cooldown window. Scores order the
candidates the orchestrator tries and shrink the time it is willing to give a
struggling source. Health is advisory: concurrent writers may overwrite each
other and the pipeline must behave the same when the backing store is down.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Protocol

from copyscout.domain.models import HealthState
from copyscout.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SCORE_MIN = -8
SCORE_MAX = 8
SUCCESS_REWARD = 2
FAILURE_PENALTY = 2
BLOCKED_PENALTY = 4
COOLDOWN_SCORE = -2
SEVERE_SCORE = -5
TIMEOUT_STEP_PER_SCORE = 0.2
TIMEOUT_STEP_PER_FAILURE = 0.3

BLOCKING_ERROR_PATTERN = re.compile(r"challenge|403|429|rate limit|forbidden", re.IGNORECASE)


def _clamp(score: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, score))


def is_blocking_error(message: str) -> bool:
    return bool(BLOCKING_ERROR_PATTERN.search(message or ""))


def apply_success(state: HealthState, now: float) -> HealthState:
    return state.model_copy(update={
        "score": _clamp(state.score + SUCCESS_REWARD),
        "cooldown_until": 0.0,
        "last_success_at": now,
    })


def apply_failure(state: HealthState, message: str, now: float, cooldown_seconds: float) -> HealthState:
    blocked = is_blocking_error(message)
    penalty = BLOCKED_PENALTY if blocked else FAILURE_PENALTY
    score = _clamp(state.score - penalty)
    cooldown_until = state.cooldown_until
    if score <= COOLDOWN_SCORE or blocked:
        duration = cooldown_seconds * 2 if score <= SEVERE_SCORE else cooldown_seconds
        cooldown_until = now + duration
    return state.model_copy(update={
        "score": score,
        "cooldown_until": cooldown_until,
        "last_failure_at": now,
    })


def prioritize(
    candidates: Sequence[str],
    states: Mapping[str, HealthState],
    now: float,
    *,
    skip_cooling: bool = True,
) -> list[str]:
    """
    Order candidates by (not cooling, higher score, declared priority).

    With ``skip_cooling`` the cooling candidates are dropped, unless every
    candidate is cooling, in which case the cooldown is ignored altogether so
    the pipeline never stalls.
    """
    ranked = list(enumerate(candidates))

    def cooling(name: str) -> bool:
        return states.get(name, HealthState()).is_cooling(now)

    all_cooling = bool(ranked) and all(cooling(name) for _, name in ranked)
    if skip_cooling and not all_cooling:
        ranked = [(index, name) for index, name in ranked if not cooling(name)]

    def sort_key(entry: tuple[int, str]) -> tuple[int, int, int]:
        index, name = entry
        state = states.get(name, HealthState())
        cooling_rank = 0 if all_cooling else int(state.is_cooling(now))
        return (cooling_rank, -state.score, index)

    return [name for _, name in sorted(ranked, key=sort_key)]


def adaptive_timeout(
    base: float,
    score: int,
    failures_this_request: int,
    *,
    minimum: float,
    remaining: float,
) -> float:
    """Shrink a source's timeout for a poor score and for repeated failures within one request."""
    timeout = base
    if score < 0:
        timeout -= TIMEOUT_STEP_PER_SCORE * abs(score)
    timeout -= TIMEOUT_STEP_PER_FAILURE * max(0, failures_this_request - 1)
    return max(0.0, min(max(timeout, minimum), remaining))


class HealthStore(Protocol):
    async def get(self, name: str) -> HealthState: ...

    async def get_many(self, names: Sequence[str]) -> dict[str, HealthState]: ...

    async def record_success(self, name: str) -> HealthState: ...

    async def record_failure(self, name: str, message: str) -> HealthState: ...


class InMemoryHealthStore:
    """Process-local health registry; deterministic in tests via an injectable clock."""

    def __init__(self, cooldown_seconds: float = 60.0, clock: Callable[[], float] = time.time) -> None:
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self._states: dict[str, HealthState] = {}

    async def get(self, name: str) -> HealthState:
        return self._states.get(name, HealthState())

    async def get_many(self, names: Sequence[str]) -> dict[str, HealthState]:
        return {name: await self.get(name) for name in names}

    async def record_success(self, name: str) -> HealthState:
        state = apply_success(await self.get(name), self.clock())
        self._states[name] = state
        return state

    async def record_failure(self, name: str, message: str) -> HealthState:
        state = apply_failure(await self.get(name), message, self.clock(), self.cooldown_seconds)
        self._states[name] = state
        return state


class KVHealthStore:
    """
    Health registry persisted in the shared key-value store so it survives restarts.

    Updates are read-modify-write without a transaction; the last writer wins.
    Read failures degrade to a neutral state and never raise.
    """

    KEY_PREFIX = "health:v1:"

    def __init__(
        self,
        store: KeyValueStore,
        cooldown_seconds: float = 60.0,
        ttl_seconds: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.cooldown_seconds = cooldown_seconds
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _key(self, name: str) -> str:
        return f"{self.KEY_PREFIX}{name}"

    async def get(self, name: str) -> HealthState:
        try:
            raw = await self.store.get(self._key(name))
        except Exception as exc:
            logger.warning("Health read failed for %s: %s", name, exc)
            return HealthState()
        if not isinstance(raw, dict):
            return HealthState()
        try:
            return HealthState.model_validate(raw)
        except ValueError:
            logger.debug("Discarding malformed health record for %s", name)
            return HealthState()

    async def get_many(self, names: Sequence[str]) -> dict[str, HealthState]:
        states = await asyncio.gather(*(self.get(name) for name in names))
        return dict(zip(names, states))

    async def _save(self, name: str, state: HealthState) -> HealthState:
        await self.store.set(self._key(name), state.model_dump(mode="json"), self.ttl_seconds)
        return state

    async def record_success(self, name: str) -> HealthState:
        return await self._save(name, apply_success(await self.get(name), self.clock()))

    async def record_failure(self, name: str, message: str) -> HealthState:
        return await self._save(
            name,
            apply_failure(await self.get(name), message, self.clock(), self.cooldown_seconds),
        )
