import logging
import traceback
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qualia_chat.cache import BoundedCache
from qualia_chat.errors import ChatError, PollingTimeout, ProviderUnavailable, RunInProgress, ThreadNotFound
from qualia_chat.services import SpeechClient, WebSearchClient
from qualia_core.config import Settings
from qualia_server.router import router

logger = logging.getLogger("qualia_server")

ERROR_STATUS_CODES: dict[type[ChatError], int] = {
    ThreadNotFound: 404,
    RunInProgress: 409,
    ProviderUnavailable: 503,
    PollingTimeout: 503,
}


def status_code_for(error: ChatError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    settings = Settings()
    app.state.settings = settings

    app.state.http_client = httpx.AsyncClient(timeout=settings.request_timeout, follow_redirects=True)
    caches = [
        BoundedCache("search", settings.search_cache_size, ttl=settings.search_cache_ttl),
        BoundedCache("audio", settings.audio_cache_size),
    ]
    search_cache, audio_cache = caches

    app.state.search_client = WebSearchClient(
        app.state.http_client,
        search_cache,
        api_key=settings.search_api_key,
        engine_id=settings.search_engine_id,
        url=settings.search_url,
    )
    app.state.speech_client = SpeechClient(
        app.state.http_client,
        audio_cache,
        url=settings.tts_url,
        fallback_url=settings.tts_fallback_url,
    )
    if not app.state.search_client.configured:
        logger.warning("Search API key or engine id missing, search will return fallback results")

    for cache in caches:
        cache.start_sweeper(settings.cache_sweep_interval)

    yield

    for cache in caches:
        await cache.stop_sweeper()
    await app.state.http_client.aclose()
    logger.info("Application shutdown completed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Qualia",
        description="Web search and text-to-speech for the Qualia assistant",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, e: HTTPException) -> JSONResponse:
        logger.error(f"HTTP {e.status_code}: {e.detail} - {request.method} {request.url}")
        return JSONResponse(
            status_code=e.status_code,
            content={"detail": e.detail},
        )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, e: ChatError) -> JSONResponse:
        logger.warning(f"{type(e).__name__} on {request.method} {request.url}: {e}")
        return JSONResponse(
            status_code=status_code_for(e),
            content={"detail": e.user_message, "action": e.action.value},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, e: ValueError) -> JSONResponse:
        logger.error(f"ValueError on {request.method} {request.url}: {e}")
        return JSONResponse(
            status_code=400,
            content={"detail": str(e)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, e: Exception) -> JSONResponse:
        logger.error(f"Unhandled exception on {request.method} {request.url}:")
        logger.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    app.include_router(router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
