from copyscout.services.bing_svc import BingRssService
from copyscout.services.duckduckgo_svc import DuckDuckGoService
from copyscout.services.jina_svc import JinaMirrorService
from copyscout.services.metrics_svc import MetricsBackfill
from copyscout.services.nitter_svc import NitterService
from copyscout.services.search_logic import SearchDependencies, SearchOrchestrator, run_search_pipeline
from copyscout.services.syndication_svc import SyndicationService

__all__ = [
    "BingRssService",
    "DuckDuckGoService",
    "JinaMirrorService",
    "MetricsBackfill",
    "NitterService",
    "SearchDependencies",
    "SearchOrchestrator",
    "SyndicationService",
    "run_search_pipeline",
]
