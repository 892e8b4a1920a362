from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from copyscout.api.dependencies import get_kv_store, get_spawner
from copyscout.api.routes.search import router as search_router
from copyscout.api.routes.system import router as system_router
from copyscout.api.routes.tweet import router as tweet_router
from copyscout.core.config import get_settings


@asynccontextmanager
async def app_lifespan(_: FastAPI):
    try:
        settings = get_settings()
        logging.getLogger().setLevel(settings.LOG_LEVEL.upper())
    except Exception:
        logging.warning("Startup configuration check failed; continuing with defaults", exc_info=True)

    yield

    # Let pending cache writes and health updates land before the loop closes.
    await get_spawner().drain()
    store = get_kv_store()
    close = getattr(store, "close", None)
    if close is not None:
        await close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    application = FastAPI(
        title="Copy Scout",
        version="1.0",
        lifespan=app_lifespan,
    )

    settings = get_settings()
    allowed_origins_set = {
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    }
    if settings.CORS_ORIGINS:
        allowed_origins_set.update(str(origin).rstrip("/") for origin in settings.CORS_ORIGINS)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(allowed_origins_set),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(search_router)
    application.include_router(tweet_router)
    application.include_router(system_router)

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.error("Unhandled exception at %s", request.url.path, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "msg": "An internal system error occurred. Please check server logs.",
            },
        )

    @application.get("/")
    def read_root() -> dict[str, str]:
        return {"status": "System Operational", "message": "Copy Scout backend is running"}

    return application


app = create_app()
