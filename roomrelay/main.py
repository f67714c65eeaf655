"""FastAPI application for the room signaling relay."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Scope

from .core.config import Settings, get_settings
from .routers import rtc as rtc_router
from .routers import signaling as signaling_router
from .services.registry import RoomRegistry
from .services.relay import SignalingRelay

logger = logging.getLogger(__name__)


class ClientBuildFiles(StaticFiles):
    """Serve the browser client build; unknown paths get ``index.html``."""

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404:
                raise
        return await super().get_response("index.html", scope)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the relay application around a fresh, empty room registry."""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry = RoomRegistry(capacity=settings.max_participants)
        app.state.registry = registry
        app.state.relay = SignalingRelay(registry, outbox_size=settings.outbox_size)
        logger.info("Signaling relay ready (max %d participants per room)", registry.capacity)
        try:
            yield
        finally:
            await registry.close()

    app = FastAPI(title="Room Signaling Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/api/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Simple liveness probe."""

        return {"status": "ok"}

    @app.head("/api/health", tags=["meta"])
    async def health_head() -> Response:
        """Allow HEAD for uptime monitors that only need the status code."""

        return Response(status_code=200)

    app.include_router(rtc_router.router, prefix="/api/rtc", tags=["rtc"])
    app.include_router(signaling_router.router, tags=["signaling"])

    static_dir = Path(settings.static_dir) if settings.static_dir else None
    if static_dir is not None and (static_dir / "index.html").is_file():
        app.mount("/", ClientBuildFiles(directory=static_dir, html=True), name="static")
    else:

        @app.get("/", response_class=PlainTextResponse, tags=["meta"])
        async def index() -> PlainTextResponse:
            return PlainTextResponse("WebRTC signaling server is running.\n")

    return app


app = create_app()
