from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from copyscout.core.config import Settings
from copyscout.core.exceptions import ValidationError
from copyscout.core.tasks import DetachedTaskSpawner
from copyscout.domain.models import (
    HealthState,
    PipelineOutcome,
    QueryVariant,
    RawTweetRecord,
    SearchMeta,
    SearchRequest,
    SourceResponse,
    VariantTrace,
)
from copyscout.services.canonical_svc import (
    SelfDuplicateClassifier,
    SimilarityFn,
    SourceTweetIdentity,
    canonicalize,
    extract_tweet_id,
)
from copyscout.services.health_svc import HealthStore, adaptive_timeout, prioritize
from copyscout.services.metrics_svc import MetricsBackfill
from copyscout.services.query_svc import QueryProfiler, normalize_search_text
from copyscout.services.similarity_svc import similarity_score
from copyscout.services.source_base import SourceClient
from copyscout.storage.search_cache import ResponseCache, SourceCache

logger = logging.getLogger(__name__)

URL_TEXT_INPUT = "url_text_extracted"
TEXT_INPUT = "text"

REASON_RESULTS_FOUND = "results_found"
REASON_EXHAUSTED = "exhausted_variants"
REASON_ALL_FAILED = "all_sources_failed"


@dataclass
class SearchDependencies:
    """Everything the orchestrator talks to, bundled so tests can swap any piece."""

    primary: SourceClient
    fallbacks: Sequence[SourceClient]
    health: HealthStore
    spawner: DetachedTaskSpawner
    settings: Settings = field(default_factory=Settings)
    response_cache: ResponseCache | None = None
    source_cache: SourceCache | None = None
    metrics: MetricsBackfill | None = None
    similarity_fn: SimilarityFn = similarity_score
    profiler: QueryProfiler | None = None
    clock: Callable[[], float] = time.monotonic
    wall_clock: Callable[[], float] = time.time


@dataclass
class _RequestState:
    meta: SearchMeta
    deadline: float
    raw: list[RawTweetRecord] = field(default_factory=list)
    instance: str | None = None
    attempts: int = 0
    failures: int = 0
    responded: bool = False
    failures_by_source: dict[str, int] = field(default_factory=dict)


def _failure_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _tag(results: Sequence[RawTweetRecord], source: str, variant: QueryVariant) -> list[RawTweetRecord]:
    return [
        record.model_copy(update={"source": record.source or source, "matched_by": variant.key.value})
        for record in results
    ]


class SearchOrchestrator:
    """
    Fans one query out over the primary mirror source and the fallback sources.

    Variants are tried most literal first. For each one the primary source's
    mirrors are tried in health order until one answers; only when it answers
    with nothing are the fallback sources raced in small batches. Results from
    every variant are canonicalized together, and the loop stops early once
    enough distinct tweets have been found or the global deadline passes.
    The deadline only gates new calls; calls already in flight run to their
    own timeout.
    """

    def __init__(self, deps: SearchDependencies) -> None:
        self.deps = deps
        self.settings = deps.settings
        self.profiler = deps.profiler or QueryProfiler(generic_ratio=deps.settings.GENERIC_TERM_RATIO)
        self.classifier = SelfDuplicateClassifier(
            deps.similarity_fn,
            threshold=deps.settings.SELF_DUPLICATE_SIMILARITY_THRESHOLD,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self.deps.clock() - started) * 1000)

    def _remaining(self, state: _RequestState) -> float:
        return state.deadline - self.deps.clock()

    # Detached side effects

    def _record_success(self, health_key: str) -> None:
        self.deps.spawner.spawn(self.deps.health.record_success(health_key), label=f"health:{health_key}")

    def _record_failure(self, health_key: str, exc: BaseException) -> None:
        self.deps.spawner.spawn(
            self.deps.health.record_failure(health_key, _failure_message(exc)),
            label=f"health:{health_key}",
        )

    def _store_source_response(self, source: str, query: str, response: SourceResponse) -> None:
        if self.deps.source_cache is None or not response.results:
            return
        self.deps.spawner.spawn(self.deps.source_cache.set(source, query, response), label=f"source-cache:{source}")

    async def _cached_source_response(self, source: str, query: str, state: _RequestState) -> SourceResponse | None:
        if self.deps.source_cache is None:
            return None
        cached = await self.deps.source_cache.get(source, query)
        if cached is not None:
            state.meta.counter(source).cache_hits += 1
            state.meta.source_cache_hits += 1
            state.responded = True
        return cached

    # Source calls

    def _timeout_for(self, source: str, health: HealthState, state: _RequestState) -> float:
        return adaptive_timeout(
            self.settings.SOURCE_TIMEOUT_SECONDS,
            health.score,
            state.failures_by_source.get(source, 0),
            minimum=self.settings.MIN_SOURCE_TIMEOUT_SECONDS,
            remaining=self._remaining(state),
        )

    def _count_attempt(self, source: str, state: _RequestState, trace: VariantTrace) -> None:
        state.meta.counter(source).attempts += 1
        trace.source_attempts[source] = trace.source_attempts.get(source, 0) + 1
        state.attempts += 1

    def _count_failure(self, source: str, state: _RequestState) -> None:
        state.meta.counter(source).failures += 1
        state.failures_by_source[source] = state.failures_by_source.get(source, 0) + 1
        state.failures += 1

    async def _search_primary(
        self, variant: QueryVariant, state: _RequestState, trace: VariantTrace
    ) -> list[RawTweetRecord]:
        source = self.deps.primary
        cached = await self._cached_source_response(source.name, variant.query, state)
        if cached is not None:
            state.instance = state.instance or cached.instance
            return _tag(cached.results, source.name, variant)

        instances: dict[str, str | None] = {f"{source.name}:{url}": url for url in source.instances}
        if not instances:
            instances = {source.name: None}
        health = await self.deps.health.get_many(list(instances))
        ordered = prioritize(list(instances), health, self.deps.wall_clock())

        for health_key in ordered:
            if self._remaining(state) <= 0:
                state.meta.deadline_reached = True
                break
            timeout = self._timeout_for(source.name, health.get(health_key, HealthState()), state)
            instance = instances[health_key]
            self._count_attempt(source.name, state, trace)
            try:
                response = await asyncio.wait_for(
                    source.search(variant.query, timeout=timeout, instance=instance),
                    timeout,
                )
            except Exception as exc:
                logger.warning("Primary source %s failed for %s: %s", health_key, variant.key.value, _failure_message(exc))
                self._count_failure(source.name, state)
                self._record_failure(health_key, exc)
                continue

            self._record_success(health_key)
            state.responded = True
            if response.results:
                state.instance = state.instance or response.instance or instance
                self._store_source_response(source.name, variant.query, response)
            return _tag(response.results, source.name, variant)
        return []

    async def _call_fallback(
        self,
        client: SourceClient,
        health: HealthState,
        variant: QueryVariant,
        state: _RequestState,
        trace: VariantTrace,
    ) -> SourceResponse | None:
        cached = await self._cached_source_response(client.name, variant.query, state)
        if cached is not None:
            return cached

        timeout = self._timeout_for(client.name, health, state)
        self._count_attempt(client.name, state, trace)
        try:
            response = await asyncio.wait_for(client.search(variant.query, timeout=timeout), timeout)
        except Exception as exc:
            logger.warning("Fallback source %s failed for %s: %s", client.name, variant.key.value, _failure_message(exc))
            self._count_failure(client.name, state)
            self._record_failure(client.name, exc)
            return None

        self._record_success(client.name)
        state.responded = True
        self._store_source_response(client.name, variant.query, response)
        return response

    async def _search_fallbacks(
        self, variant: QueryVariant, state: _RequestState, trace: VariantTrace
    ) -> list[RawTweetRecord]:
        clients = {client.name: client for client in self.deps.fallbacks}
        if not clients:
            return []
        health = await self.deps.health.get_many(list(clients))
        ordered = prioritize(list(clients), health, self.deps.wall_clock())
        batch_size = self.settings.FALLBACK_BATCH_SIZE

        for start in range(0, len(ordered), batch_size):
            if self._remaining(state) <= 0:
                state.meta.deadline_reached = True
                break
            batch = ordered[start:start + batch_size]

            async def run(name: str) -> tuple[str, SourceResponse | None]:
                response = await self._call_fallback(clients[name], health.get(name, HealthState()), variant, state, trace)
                return name, response

            winner: tuple[str, SourceResponse] | None = None
            for finished in asyncio.as_completed([run(name) for name in batch]):
                name, response = await finished
                if winner is None and response is not None and response.results:
                    winner = (name, response)

            if winner is not None:
                name, response = winner
                trace.winner = name
                state.instance = state.instance or response.instance
                return _tag(response.results, name, variant)
        return []

    # Pipeline

    async def _backfill(self, results: list[RawTweetRecord], *, max_items: int, concurrency: int) -> tuple[list[RawTweetRecord], int]:
        if self.deps.metrics is None or not results:
            return results, 0
        outcome = await self.deps.metrics.backfill(
            results,
            max_items=max_items,
            concurrency=concurrency,
            timeout=self.settings.METRICS_TIMEOUT_SECONDS,
        )
        return outcome.results, outcome.enriched

    async def run(self, request: SearchRequest) -> PipelineOutcome:
        started = self.deps.clock()
        try:
            return await self._run(request, started)
        except ValidationError as exc:
            logger.info("Rejected search input: %s", exc)
            return PipelineOutcome(400, exc.to_body())

    async def _run(self, request: SearchRequest, started: float) -> PipelineOutcome:
        query = (request.query or "").strip()
        if not query:
            raise ValidationError("Query is required")

        normalized = normalize_search_text(query)
        input_type = URL_TEXT_INPUT if request.query_input_type == URL_TEXT_INPUT else TEXT_INPUT
        exclude_tweet_id = extract_tweet_id(request.exclude_tweet_id) or request.exclude_tweet_id or None

        cache_key: str | None = None
        cache = self.deps.response_cache if self.settings.SEARCH_CACHE_ENABLED else None
        if cache is not None:
            cache_key = cache.key_for(
                normalized, input_type, exclude_tweet_id, request.exclude_username, request.exclude_content
            )
            cached = await cache.get(cache_key)
            if cached is not None:
                body = dict(cached)
                body["meta"] = {**(body.get("meta") or {}), "cacheHit": True, "timingMs": self._elapsed_ms(started)}
                logger.info("Search cache hit for %d-char query", len(normalized))
                return PipelineOutcome(200, body)

        profile = self.profiler.profile(normalized)
        meta = SearchMeta(
            query_input_type=input_type,
            exclude_tweet_id=exclude_tweet_id,
            exclude_username=request.exclude_username,
            query_profile=profile,
        )
        variants = self.profiler.build_variants(
            normalized,
            profile,
            max_variants=self.settings.MAX_QUERY_VARIANTS,
            max_total=self.settings.MAX_ADAPTIVE_VARIANTS,
        )
        if not variants:
            meta.reason = "query_not_searchable"
            meta.timing_ms = self._elapsed_ms(started)
            raise ValidationError(
                "Query is too short to search",
                details="Provide at least a few words of the tweet text",
                meta=meta.to_payload(),
            )

        state = _RequestState(meta=meta, deadline=started + self.settings.SEARCH_GLOBAL_TIMEOUT_SECONDS)
        canonical: list[RawTweetRecord] = []

        for variant in variants:
            if self._remaining(state) <= 0:
                meta.deadline_reached = True
                break
            trace = VariantTrace(key=variant.key.value, query_length=len(variant.query))
            meta.variants_tried.append(trace)

            found = await self._search_primary(variant, state, trace)
            if found:
                trace.winner = self.deps.primary.name
            else:
                found = await self._search_fallbacks(variant, state, trace)
            trace.hits = len(found)

            state.raw.extend(found)
            canonical = canonicalize(state.raw)
            if len(canonical) >= self.settings.EARLY_STOP_THRESHOLD:
                meta.early_stopped = True
                break

        scored = [
            record.model_copy(update={"similarity": self.deps.similarity_fn(record.content, normalized)})
            for record in canonical
        ]
        identity = SourceTweetIdentity(
            tweet_id=exclude_tweet_id,
            username=request.exclude_username,
            content=request.exclude_content,
        )
        classification = self.classifier.classify(scored, identity, normalized)
        meta.excluded_count = classification.excluded_count
        meta.self_duplicate_count = len(classification.self_duplicates)

        results, enriched = await self._backfill(
            classification.external,
            max_items=self.settings.METRICS_MAX_ITEMS,
            concurrency=self.settings.METRICS_CONCURRENCY,
        )
        self_duplicates, self_enriched = await self._backfill(
            classification.self_duplicates,
            max_items=self.settings.SELF_DUPLICATE_METRICS_MAX_ITEMS,
            concurrency=self.settings.SELF_DUPLICATE_METRICS_CONCURRENCY,
        )
        meta.metrics_enriched = enriched + self_enriched

        all_failed = state.attempts > 0 and state.failures == state.attempts and not state.responded
        if all_failed:
            meta.reason = REASON_ALL_FAILED
        elif results:
            meta.reason = REASON_RESULTS_FOUND
        else:
            meta.reason = REASON_EXHAUSTED
        meta.timing_ms = self._elapsed_ms(started)

        body: dict[str, Any] = {
            "results": [record.to_payload() for record in results],
            "selfDuplicates": [record.to_payload() for record in self_duplicates],
            "instance": state.instance,
            "meta": meta.to_payload(),
        }
        logger.info(
            "Search finished: reason=%s variants=%d results=%d excluded=%d in %dms",
            meta.reason,
            len(meta.variants_tried),
            len(results),
            meta.excluded_count,
            meta.timing_ms,
        )

        if all_failed:
            body.update(error="Failed to fetch search results", details="All automated sources failed")
            return PipelineOutcome(500, body)

        if cache is not None and cache_key is not None:
            self.deps.spawner.spawn(cache.set(cache_key, body), label="search-cache")
        return PipelineOutcome(200, body)


async def run_search_pipeline(request: SearchRequest, deps: SearchDependencies) -> PipelineOutcome:
    return await SearchOrchestrator(deps).run(request)
