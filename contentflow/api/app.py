"""FastAPI application for the ContentFlow content tracker.

Uses a lifespan context manager to own the ``SheetsAdapter`` (built from
settings, initialized on startup, shut down on exit) and pure ASGI
middleware (no BaseHTTPMiddleware).
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contentflow.config import get_settings
from contentflow.content import models as content_models
from contentflow.content import service as content_service
from contentflow.sheets import NotInitializedError, SheetsAdapter, SheetsError

from .errors import register_exception_handlers
from .middleware import (
    ErrorHandlingMiddleware,
    RateLimitMiddleware,
    RequestBodyLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from .models import HealthResponse, LiveResponse

# Settings are accessed via get_settings() at call sites rather than frozen
# at module level so test monkeypatching works.
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build and initialize the sheets adapter; shut it down on exit."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app.state.started_at = time.monotonic()
    app.state.adapter = None

    try:
        adapter = SheetsAdapter.from_settings(settings)
        await adapter.initialize()
        logger.info("Google Sheets service initialized successfully")
    except SheetsError:
        if settings.STARTUP_FAIL_FAST:
            raise
        logger.exception("Failed to initialize Google Sheets. Content routes will return 503.")
    else:
        app.state.adapter = adapter

    app.state.ready = True
    yield
    app.state.ready = False
    if app.state.adapter is not None:
        await app.state.adapter.shutdown()
    logger.info("Application shutdown complete.")


def get_adapter(request: Request) -> SheetsAdapter:
    """Request dependency: the adapter owned by the running app."""
    adapter = getattr(request.app.state, "adapter", None)
    if adapter is None:
        raise NotInitializedError("Google Sheets service is not initialized")
    return adapter


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="ContentFlow API",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "X-Request-ID"],
        max_age=86400,
    )

    # Pure ASGI middleware -- Starlette executes in REVERSE add order.
    #   RateLimit        (added 1st, executes last / innermost)
    #   Security         (added 2nd)
    #   Logging          (added 3rd)
    #   ErrorHandling    (added 4th)
    #   BodyLimit        (added 5th, executes first / outermost)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestBodyLimitMiddleware)

    register_exception_handlers(app)

    # ------------------------------------------------------------------
    # GET /live -- liveness probe, always 200
    # ------------------------------------------------------------------
    @app.get("/live", response_model=LiveResponse)
    async def liveness():
        return LiveResponse()

    # ------------------------------------------------------------------
    # GET /api/health -- credentials, connection status and columns
    # ------------------------------------------------------------------
    @app.get("/api/health", response_model=HealthResponse)
    async def health(request: Request):
        settings = get_settings()
        adapter = getattr(request.app.state, "adapter", None)
        if adapter is None:
            sheets = {
                "status": "error",
                "columns": [],
                "error": "Google Sheets service is not initialized",
            }
        else:
            sheets = await adapter.validate_connection()

        healthy = getattr(request.app.state, "ready", False) and sheets["status"] == "connected"
        started_at = getattr(request.app.state, "started_at", time.monotonic())
        body = HealthResponse(
            status="healthy" if healthy else "degraded",
            timestamp=content_service.utc_now_iso(),
            version=settings.VERSION,
            environment=settings.ENVIRONMENT,
            uptime_seconds=round(time.monotonic() - started_at, 1),
            credentials=settings.credentials_status(),
            sheets=sheets,
        )
        return JSONResponse(content=body.model_dump(), status_code=200 if healthy else 503)

    # ------------------------------------------------------------------
    # Content routes
    # ------------------------------------------------------------------
    @app.get(
        "/api/content",
        response_model=list[content_models.ContentItem],
        response_model_by_alias=True,
    )
    async def list_content(refresh: bool = False, adapter: SheetsAdapter = Depends(get_adapter)):
        items = await content_service.list_content(adapter, refresh=refresh)
        logger.info("Fetched %d content items (refresh=%s)", len(items), refresh)
        return items

    @app.get(
        "/api/content/{content_id}",
        response_model=content_models.ContentItem,
        response_model_by_alias=True,
    )
    async def get_content(content_id: str, adapter: SheetsAdapter = Depends(get_adapter)):
        return await content_service.get_content(adapter, content_id)

    @app.post("/api/content/status", response_model=content_models.StatusUpdateResponse)
    async def update_status(
        body: content_models.StatusUpdateRequest,
        adapter: SheetsAdapter = Depends(get_adapter),
    ):
        await content_service.update_status(adapter, body.id, body.status, body.feedback)
        logger.info("Status updated successfully: id=%s status=%s", body.id, body.status.value)
        return content_models.StatusUpdateResponse(
            message="Status updated successfully",
            id=body.id,
            status=body.status.value,
        )

    @app.post("/api/content/sync", response_model=content_models.SyncResponse)
    async def sync_content(
        body: content_models.SyncRequest,
        adapter: SheetsAdapter = Depends(get_adapter),
    ):
        updated = await content_service.sync_items(adapter, body.items)
        return content_models.SyncResponse(
            message="Content synced successfully",
            timestamp=content_service.utc_now_iso(),
            updated=len(updated),
        )

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "contentflow.api.app:app",
        host="0.0.0.0",
        port=get_settings().PORT,
    )
