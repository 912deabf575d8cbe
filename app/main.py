"""
Inkhouse Backend - Main Application
Public REST API for the Inkhouse blogging platform, plus the account and
API key management routes that feed it.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import (
    DatabaseNotConfiguredError,
    check_database_health,
    close_database,
    create_tables,
    init_database,
)
from app.core.errors import (
    ApiError,
    api_error_handler,
    database_not_configured_handler,
    unhandled_error_handler,
)
from app.api.routes import api_keys, auth, posts

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(
        f"API rate limit: {settings.API_RATE_LIMIT} requests per "
        f"{settings.API_RATE_LIMIT_WINDOW_SECONDS}s per key"
    )

    await init_database()
    await create_tables()

    yield

    await close_database()
    logger.info(f"Shutting down {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Inkhouse public API. Manage your posts programmatically with an API key "
        "sent as `Authorization: Bearer <api_key>`."
    ),
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)

# ── Errors ───────────────────────────────────────────────────────────────────
app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(DatabaseNotConfiguredError, database_not_configured_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# ── Routes ───────────────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(api_keys.router, prefix="/api/api-keys", tags=["API Keys"])
app.include_router(posts.router, prefix="/api/v1/posts", tags=["Public API v1"])


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/api/health", tags=["Health"])
async def health_check():
    database_ok = await check_database_health()
    return {
        "status": "healthy" if database_ok else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": "healthy" if database_ok else "unhealthy",
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }
