"""
Async engine, session factory and the request-scoped session dependency.

Every request gets its own AsyncSession. It is committed when the handler
returns normally, rolled back when it raises, and closed on every path.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def _enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """
    SQLite has no SELECT ... FOR UPDATE. Taking the write lock when the
    transaction begins gives the same check-then-mutate serialization the
    row lock gives on PostgreSQL (at database rather than row granularity).
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself instead of pysqlite's implicit one
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT},
        )
        _enable_sqlite_write_locking(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = build_sessionmaker(engine)


async def rollback_quietly(session: AsyncSession) -> None:
    """Roll back, logging instead of raising if the rollback itself fails."""
    try:
        await session.rollback()
    except Exception as e:
        logger.error("rollback_failed", error=str(e))


async def close_quietly(session: AsyncSession) -> None:
    try:
        await session.close()
    except Exception as e:
        logger.error("session_close_failed", error=str(e))


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await rollback_quietly(session)
        raise
    finally:
        await close_quietly(session)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with session_scope(SessionLocal) as session:
        yield session
