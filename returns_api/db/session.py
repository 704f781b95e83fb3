"""
Async engine and per-request sessions.

PostgreSQL (asyncpg) in production; an in-memory SQLite database
(aiosqlite) when ``USE_SQLITE`` is set, which is also what the tests use.
"""

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from returns_api.core.config import settings


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_sqlite_engine(url: str = "sqlite+aiosqlite://", echo: bool = False) -> AsyncEngine:
    """
    In-memory SQLite engine whose connections all see the same database
    (``StaticPool``), with foreign keys enforced.
    """
    sqlite_engine = create_async_engine(
        url,
        echo=echo,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(sqlite_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return sqlite_engine


def create_postgres_engine() -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )


engine = (
    create_sqlite_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    if settings.USE_SQLITE
    else create_postgres_engine()
)

# Async sessions cannot lazy-load, so committed objects must stay populated.
AsyncSessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
