from __future__ import annotations

from functools import lru_cache

from copyscout.core.config import Settings, get_settings
from copyscout.core.tasks import DetachedTaskSpawner
from copyscout.services.bing_svc import BingRssService
from copyscout.services.duckduckgo_svc import DuckDuckGoService
from copyscout.services.health_svc import HealthStore, KVHealthStore
from copyscout.services.jina_svc import JinaMirrorService
from copyscout.services.metrics_svc import MetricsBackfill
from copyscout.services.nitter_svc import NitterService
from copyscout.services.query_svc import QueryProfiler
from copyscout.services.search_logic import SearchDependencies
from copyscout.services.syndication_svc import SyndicationService
from copyscout.services.tweet_fetch_svc import TweetLookup
from copyscout.storage.kv_store import KeyValueStore, build_kv_store
from copyscout.storage.search_cache import ResponseCache, SourceCache


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def get_kv_store() -> KeyValueStore:
    return build_kv_store(get_settings())


@lru_cache(maxsize=1)
def get_spawner() -> DetachedTaskSpawner:
    return DetachedTaskSpawner()


@lru_cache(maxsize=1)
def get_health_store() -> HealthStore:
    settings = get_settings()
    return KVHealthStore(
        get_kv_store(),
        cooldown_seconds=settings.HEALTH_COOLDOWN_SECONDS,
        ttl_seconds=settings.HEALTH_TTL_SECONDS,
    )


@lru_cache(maxsize=1)
def get_nitter_service() -> NitterService:
    return NitterService(get_settings().nitter_instances, health=get_health_store())


@lru_cache(maxsize=1)
def get_syndication_service() -> SyndicationService:
    return SyndicationService()


@lru_cache(maxsize=1)
def get_metrics_backfill() -> MetricsBackfill:
    return MetricsBackfill(fast_client=get_syndication_service(), detail_client=get_nitter_service())


@lru_cache(maxsize=1)
def get_search_dependencies() -> SearchDependencies:
    settings = get_settings()
    store = get_kv_store()
    return SearchDependencies(
        primary=get_nitter_service(),
        fallbacks=[DuckDuckGoService(), BingRssService(), JinaMirrorService()],
        health=get_health_store(),
        spawner=get_spawner(),
        settings=settings,
        response_cache=ResponseCache(store, ttl_seconds=settings.SEARCH_CACHE_TTL_SECONDS),
        source_cache=SourceCache(store, ttl_seconds=settings.SOURCE_CACHE_TTL_SECONDS),
        metrics=get_metrics_backfill(),
        profiler=QueryProfiler(generic_ratio=settings.GENERIC_TERM_RATIO),
    )


def get_tweet_lookups() -> list[TweetLookup]:
    nitter = get_nitter_service()
    syndication = get_syndication_service()
    return [nitter.get_tweet, syndication.fetch_details, syndication.fetch_oembed]
