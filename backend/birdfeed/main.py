"""
Bird Feed Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers;
       uvicorn serves `birdfeed.main:app`.

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                      FastAPI App                        │
    │                                                         │
    │  Middleware: RateLimit → RequestID → Logging → GZip     │
    │              → CORS                                     │
    │                                                         │
    │  Routes: photos, upload, species, birds, haikubox,      │
    │          activity, suggestions, settings, public,       │
    │          bookmarks, files, /health                      │
    │                                                         │
    │  Exception Handlers: BirdFeedError → its status code,   │
    │                      anything else → generic 500        │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, storage directory
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from birdfeed import __version__
from birdfeed.config import settings
from birdfeed.database import dispose_engine
from birdfeed.exceptions import BirdFeedError, DatabaseError, retry_after_seconds
from birdfeed.middleware.logging import RequestLoggingMiddleware
from birdfeed.middleware.rate_limit import RateLimitMiddleware
from birdfeed.middleware.request_id import RequestIDMiddleware, request_id_var
from birdfeed.routes import (
    activity,
    agreement,
    birds,
    bookmarks,
    files,
    haikubox,
    health,
    photos,
    public,
    settings as settings_routes,
    species,
    suggestions,
    upload,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configures the root logger once, at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s to stdout
    (the container runtime collects stdout).
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-operation chatter from third-party libraries
    for name in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("Bird Feed Backend %s starting up...", __version__)

    # Misconfiguration is logged, not fatal: health checks and the
    # unaffected endpoints keep working.
    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Photo storage: %s", storage.resolve())
    logger.info(
        "Limits: %d photos per species, %d in the inbox",
        settings.species_photo_limit,
        settings.unassigned_photo_limit,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Bird Feed Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _retry_after(exc: BirdFeedError) -> Dict[str, str]:
    seconds = retry_after_seconds(exc)
    return {"Retry-After": str(seconds)} if seconds else {}


def register_exception_handlers(app: FastAPI) -> None:
    """
    Renders every error as {error, message, details, request_id}.

    BirdFeedError subclasses carry their own status code and error code.
    DatabaseError and unexpected exceptions answer with a generic message;
    their details are logged server-side only.
    """

    @app.exception_handler(BirdFeedError)
    async def handle_birdfeed_error(request: Request, exc: BirdFeedError):
        rid = request_id_var.get("")
        status = exc.status_code

        if status >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        elif status != 404:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        if isinstance(exc, DatabaseError):
            content = {
                "error": exc.error_code,
                "message": "An internal error occurred. Please try again later.",
                "details": None,
                "request_id": rid,
            }
        else:
            content = {
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.context or None,
                "request_id": rid,
            }
        return JSONResponse(status_code=status, content=content, headers=_retry_after(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "details": None,
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Bird Feed API",
        description=(
            "Backend for Bird Feed: curated bird photo galleries, Haikubox "
            "detection sync, activity timelines and public galleries."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Added innermost first; executes RateLimit → RequestID → Logging → GZip → CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    for module in (
        photos,
        upload,
        species,
        birds,
        haikubox,
        activity,
        suggestions,
        settings_routes,
        public,
        bookmarks,
        agreement,
        files,
        health,
    ):
        app.include_router(module.router)

    return app


app = create_app()
