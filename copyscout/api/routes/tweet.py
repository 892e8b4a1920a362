from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from copyscout.api.dependencies import get_tweet_lookups
from copyscout.domain.models import TweetFetchRequest
from copyscout.services.tweet_fetch_svc import TweetLookup, run_tweet_fetch_pipeline

router = APIRouter(prefix="/api", tags=["tweet"])


@router.post("/tweet")
async def fetch_tweet(
    payload: TweetFetchRequest,
    lookups: list[TweetLookup] = Depends(get_tweet_lookups),
) -> JSONResponse:
    """Resolve a tweet URL to its text so it can be searched for."""
    outcome = await run_tweet_fetch_pipeline(payload, lookups)
    return JSONResponse(status_code=outcome.status, content=outcome.body)
