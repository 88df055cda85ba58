"""
FastAPI Application Entry Point

This module builds the FastAPI application and owns the lifecycle of the
process-wide collaborators:
- Database (engine + pool), initialized on startup and closed on shutdown
- Metadata fetcher and the optional Redis redirect cache, shared across requests
- Middleware (logging, CORS), rate limiting and routes

Run with:
    uvicorn shortlinks.main:app
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shortlinks.api import endpoints
from shortlinks.core.logging_config import setup_logging
from shortlinks.core.rate_limit import limiter
from shortlinks.core.setting import settings
from shortlinks.db.session import Database
from shortlinks.middleware.logging import add_logging_middleware
from shortlinks.services.metadata_fetcher import HTTPMetadataFetcher, MetadataFetcher
from shortlinks.services.redirect_cache import RedirectCache

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(
    database: Optional[Database] = None,
    metadata_fetcher: Optional[MetadataFetcher] = None,
    redirect_cache: Optional[RedirectCache] = None,
    create_tables: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        database: Store handle (default: one built from DATABASE_URL)
        metadata_fetcher: Fetcher for preview tags (default: HTTPMetadataFetcher)
        redirect_cache: Redirect cache (default: built when REDIS_URL is set)
        create_tables: Create missing tables on startup (default: CREATE_TABLES_ON_STARTUP)
    """
    app = FastAPI(
        title="Short Links Service",
        description="URL shortener with per-user quotas and editable social-preview metadata",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if redirect_cache is None and settings.REDIS_URL:
        redirect_cache = RedirectCache.from_url(settings.REDIS_URL, ttl_seconds=settings.REDIRECT_CACHE_TTL)

    app.state.database = database or Database(settings.DATABASE_URL)
    app.state.metadata_fetcher = metadata_fetcher or HTTPMetadataFetcher()
    app.state.redirect_cache = redirect_cache
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    add_logging_middleware(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health endpoints defined before router to match before catch-all route
    @app.get("/", tags=["Health"])
    async def root():
        return {
            "message": "Short Links Service",
            "version": VERSION,
            "docs": "/docs"
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "healthy"}

    app.include_router(endpoints.router, tags=["Short Links"])

    should_create_tables = settings.CREATE_TABLES_ON_STARTUP if create_tables is None else create_tables

    @app.on_event("startup")
    async def startup_event():
        """Open the database on startup."""
        setup_logging(settings.LOG_LEVEL)
        await app.state.database.init(create_tables=should_create_tables)
        logger.info(f"Short Links Service {VERSION} started ({settings.ENV_SETTING.value})")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown."""
        if app.state.redirect_cache is not None:
            await app.state.redirect_cache.close()
        await app.state.database.close()

    return app


app = create_app()
