from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from videosync.api.status import router as status_router
from videosync.core.config import Settings, get_settings
from videosync.services.relay import RelayService
from videosync.ws.routes import router as ws_router

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error("unhandled async error: %s", context.get("message"), exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)
    relay: RelayService = app.state.relay
    relay.start()
    try:
        yield
    finally:
        await relay.shutdown()


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return JSONResponse({"error": "Endpoint not found"}, status_code=404)
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Video Sync Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.relay = RelayService(settings)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    @app.middleware("http")
    async def answer_options(request: Request, call_next):
        # OPTIONS on any path, preflight or not, gets an empty 200 with CORS headers
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        return await call_next(request)

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.include_router(status_router)
    app.include_router(ws_router)
    return app
