"""
Church Song Navigator - Main Application

Single-process FastAPI application that serves:
- the public homepage (this week's and next week's worship songs)
- the admin page and its JSON endpoints
- sheet-music / audio uploads to an S3-compatible object store
- a health check endpoint

Relational data (church config, collections, songs, sheets) lives in a
local SQLite file; uploaded files live in the object store and are fetched
by browsers from its public URL.
"""

import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates
from loguru import logger

from songnav.auth import AdminAuthError
from songnav.config import (
    APP_ENV,
    APP_HOST,
    APP_PORT,
    APP_VERSION,
    DEBUG,
    LOG_LEVEL,
    TEMPLATES_DIR,
    ensure_directories,
)
from songnav.database import count_collections, ensure_schema, init_db
from songnav.routes.admin import router as admin_router
from songnav.routes.pages import router as pages_router
from songnav.storage import is_configured as storage_configured

# ---------------------------------------------------------------------------
# Logging setup - stdout only
# ---------------------------------------------------------------------------
logger.remove()

logger.add(
    sys.stdout,
    level="DEBUG" if DEBUG else LOG_LEVEL,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    colorize=True,
)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    On startup:
        1. Create the database directory
        2. Initialize / migrate the SQLite database and seed the config row
        3. Report whether uploads can reach the object store
    """
    logger.info("🚀 Starting Church Song Navigator v{}", APP_VERSION)
    logger.info("📋 Environment: {} | Debug: {}", APP_ENV, DEBUG)

    ensure_directories()

    try:
        init_db()
    except Exception as e:
        logger.critical("❌ Database initialization failed: {}", e)
        raise

    if storage_configured():
        logger.info("☁️ Object storage configured, uploads enabled")
    else:
        logger.warning("⚠️ Object storage not configured, uploads will fail with 500")

    logger.success("✅ Application ready, listening on {}:{}", APP_HOST, APP_PORT)

    yield

    logger.info("👋 Shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Church Song Navigator",
        description=(
            "Weekly worship song navigation: this week's and next week's songs "
            "with audio and sheet music, managed from a password-protected admin page."
        ),
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
    )

    # ------------------------------------------------------------------
    # Jinja2 templates
    # ------------------------------------------------------------------
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    app.state.templates = templates

    # ------------------------------------------------------------------
    # Admin auth failures as {success, error} JSON
    # ------------------------------------------------------------------
    @app.exception_handler(AdminAuthError)
    async def admin_auth_error(request: Request, exc: AdminAuthError):
        logger.warning("🔒 Unauthorized {} {}", request.method, request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
        )

    # ------------------------------------------------------------------
    # Schema guard: tables and the config row exist before any handler runs
    # ------------------------------------------------------------------
    @app.middleware("http")
    async def schema_guard(request: Request, call_next):
        await ensure_schema()
        return await call_next(request)

    # ------------------------------------------------------------------
    # Request logging middleware (outermost: also the last-resort handler)
    # ------------------------------------------------------------------
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every incoming HTTP request with timing information."""
        start = time.time()
        try:
            response = await call_next(request)
        except Exception as exc:
            duration = round(time.time() - start, 3)
            logger.error(
                "❌ {method} {path} unhandled error after {duration}s: {exc}",
                method=request.method,
                path=request.url.path,
                duration=duration,
                exc=exc,
            )
            return PlainTextResponse(f"Error: {exc}", status_code=500)

        duration = round(time.time() - start, 3)
        status = response.status_code
        if status >= 500:
            log = logger.error
        elif status >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "📤 {method} {path} {status} [{duration}s]",
            method=request.method,
            path=request.url.path,
            status=status,
            duration=duration,
        )
        return response

    # ------------------------------------------------------------------
    # Health check (mounted on the app, before the catch-all)
    # ------------------------------------------------------------------
    @app.get("/health")
    async def health():
        """Liveness plus a database round-trip."""
        try:
            await count_collections()
            database = "ok"
        except Exception as e:
            logger.error("❌ Health check database error: {}", e)
            database = f"error: {e}"

        return {
            "status": "healthy" if database == "ok" else "degraded",
            "database": database,
            "storage_configured": storage_configured(),
            "version": APP_VERSION,
        }

    # ------------------------------------------------------------------
    # Register routers
    # ------------------------------------------------------------------
    app.include_router(admin_router)  # /admin/*  JSON endpoints
    app.include_router(pages_router)  # /, /admin page, catch-all (must be last)

    return app


# ---------------------------------------------------------------------------
# Create the app instance (used by Uvicorn)
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# Direct execution (development)
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "songnav.main:app",
        host=APP_HOST,
        port=APP_PORT,
        reload=DEBUG,
        log_level="debug" if DEBUG else "info",
    )
