from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from copyscout.api.dependencies import get_app_settings, get_kv_store, get_search_dependencies
from copyscout.core.config import Settings
from copyscout.core.logging import get_logger, log_event
from copyscout.domain.models import PipelineOutcome, RawTweetRecord, SearchRequest
from copyscout.services.ranking_svc import rank_results
from copyscout.services.search_logic import SearchDependencies, run_search_pipeline
from copyscout.storage.kv_store import KeyValueStore

router = APIRouter(prefix="/api", tags=["search"])
logger = logging.getLogger(__name__)
health_logger = get_logger("copyscout.search_health")

TOTAL_SEARCHES_KEY = "total_searches"


def _ranked_body(body: dict[str, Any]) -> dict[str, Any]:
    results = [RawTweetRecord.model_validate(item) for item in body.get("results") or []]
    return {**body, "results": [item.to_payload() for item in rank_results(results)]}


def _log_search_health(outcome: PipelineOutcome, query: str) -> None:
    meta = outcome.body.get("meta") or {}
    log_event(
        health_logger,
        "search_health",
        status=outcome.status,
        reason=meta.get("reason"),
        queryLength=len(query),
        queryInputType=meta.get("queryInputType"),
        cacheHit=meta.get("cacheHit", False),
        earlyStopped=meta.get("earlyStopped", False),
        results=len(outcome.body.get("results") or []),
        excludedCount=meta.get("excludedCount", 0),
        selfDuplicateCount=meta.get("selfDuplicateCount", 0),
        metricsEnriched=meta.get("metricsEnriched", 0),
        sources=meta.get("sources", {}),
        timingMs=meta.get("timingMs"),
    )


@router.post("/search")
async def search_copies(
    payload: SearchRequest,
    deps: SearchDependencies = Depends(get_search_dependencies),
    store: KeyValueStore = Depends(get_kv_store),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """Find copies of the given tweet text across every configured source."""
    outcome = await run_search_pipeline(payload, deps)
    body = outcome.body
    if outcome.status == 200:
        body = _ranked_body(body)
        deps.spawner.spawn(store.incr(TOTAL_SEARCHES_KEY), label="stats:total_searches")

    if settings.SEARCH_HEALTH_LOG and outcome.status != 400:
        _log_search_health(outcome, payload.query or "")
    return JSONResponse(status_code=outcome.status, content=body)
