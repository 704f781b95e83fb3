"""
Investment Returns API: ASGI entry point (``uvicorn returns_api.main:app``).
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.openapi.docs import get_redoc_html
from sqlalchemy import text
from sqlmodel import SQLModel

from returns_api.api.v1.api import api_router
from returns_api.core.cache import cache
from returns_api.core.config import settings
from returns_api.core.exceptions import add_exception_handlers
from returns_api.core.locks import investment_locks
from returns_api.core.logging import setup_logging
from returns_api.core.resilience import db_circuit_breaker, retry_with_backoff
from returns_api.db.session import AsyncSessionLocal, engine
from returns_api.middleware import RequestIDMiddleware, RequestTimingMiddleware

setup_logging()
logger = logging.getLogger(__name__)

VERSION = "1.0.0"
REDOC_JS_URL = "https://unpkg.com/redoc@latest/bundles/redoc.standalone.js"


@retry_with_backoff(max_retries=4, base_delay=2.0, max_delay=16.0, retryable_exceptions=(Exception,))
async def _create_tables() -> None:
    import returns_api.db.base  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Create tables on startup.  A database that stays unreachable through
    every retry leaves the API up but degraded (``/health`` says so);
    requests then fail fast through the circuit breaker.
    """
    try:
        await _create_tables()
        logger.info("Database ready (%s)", "sqlite" if settings.USE_SQLITE else "postgresql")
    except Exception as exc:
        logger.error("Database unavailable at startup, serving DEGRADED: %s", exc)
    yield
    await engine.dispose()
    logger.info("Connection pool disposed")


async def _database_reachable() -> bool:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Health check could not reach the database", exc_info=True)
        return False
    return True


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=VERSION,
        description=(
            "Interest accrual, variable-return updates and performance analytics "
            "over per-investment transaction ledgers."
        ),
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        redoc_url=None,
        lifespan=lifespan,
    )

    # Added last runs first: CORS wraps timing wraps request ID wraps gzip.
    application.add_middleware(GZipMiddleware, minimum_size=500)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(RequestTimingMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(application)
    application.include_router(api_router, prefix=settings.API_V1_STR)

    @application.get("/redoc", include_in_schema=False)
    async def redoc():
        return get_redoc_html(
            openapi_url=application.openapi_url or f"{settings.API_V1_STR}/openapi.json",
            title=f"{settings.PROJECT_NAME} - ReDoc",
            redoc_js_url=REDOC_JS_URL,
        )

    @application.get("/health", tags=["Health"])
    async def health():
        """Database reachability, circuit breaker, cache and write-lock status."""
        database = await _database_reachable()
        return {
            "status": "ok" if database else "degraded",
            "version": VERSION,
            "database": database,
            "circuit_breaker": db_circuit_breaker.get_status(),
            "cache": cache.get_stats(),
            "active_write_locks": len(investment_locks),
        }

    return application


app = create_app()
