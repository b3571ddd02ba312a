"""
Taskmarket API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskmarket.api.v1 import router as api_v1_router
from taskmarket.core.config import Settings, get_settings
from taskmarket.core.events import CollaborationEvents
from taskmarket.core.logging import configure_logging
from taskmarket.core.store import DocumentStore

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    A pre-built ``store`` is used as-is and left open on shutdown; otherwise one
    is connected to ``settings.database_url`` at startup.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Taskmarket",
        description="Task collaboration protocol: applications, chats, location sharing and reviews.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.store = store
    app.state.events = CollaborationEvents()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-User-Id", "Last-Event-ID"],
    )

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint for startup probes."""
        if app.state.store is None:
            return {"status": "starting"}
        return {"status": "ready", "subscriptions": app.state.store.feed.active_count()}

    @app.on_event("startup")
    async def on_startup():
        configure_logging(settings.log_level, settings.log_format)
        if app.state.store is None:
            app.state.store = await DocumentStore.connect(settings.database_url, echo=settings.debug)
            app.state.owns_store = True
        log.info("taskmarket.starting", database_url=settings.database_url)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("taskmarket.shutting_down")
        if getattr(app.state, "owns_store", False):
            await app.state.store.close()

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "taskmarket.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
