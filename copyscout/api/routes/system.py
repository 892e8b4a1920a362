from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from copyscout.api.dependencies import get_kv_store
from copyscout.api.routes.search import TOTAL_SEARCHES_KEY
from copyscout.storage.kv_store import KeyValueStore

router = APIRouter(prefix="/api", tags=["system"])
logger = logging.getLogger(__name__)


@router.get("/health")
async def health(store: KeyValueStore = Depends(get_kv_store)) -> dict[str, Any]:
    return {"status": "awake", "store": getattr(store, "backend", "memory")}


@router.get("/stats")
async def stats(store: KeyValueStore = Depends(get_kv_store)) -> dict[str, int]:
    """Usage counters for the landing page."""
    try:
        total = int(await store.get(TOTAL_SEARCHES_KEY) or 0)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed %s counter", TOTAL_SEARCHES_KEY)
        total = 0
    return {"totalSearches": total}
