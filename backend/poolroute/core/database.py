"""
Database connection and session management.

Features:
- Connection pooling with configurable size
- Automatic connection recycling
- Pre-ping for connection health checking
- Statement timeout for long-running queries
"""

import logging
from typing import Any, AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import Pool

from poolroute.core.config import settings
from poolroute.core.exceptions import StoreUnavailableException

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def _engine_options(url: str) -> dict[str, Any]:
    """Pool and driver options; SQLite (tests, local tooling) takes none of them."""
    if url.startswith("sqlite"):
        return {"echo": settings.DEBUG}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_recycle": settings.DATABASE_POOL_RECYCLE,
        "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
        "pool_pre_ping": settings.DATABASE_POOL_PRE_PING,
        "echo": settings.DEBUG,
        "connect_args": {
            "server_settings": {
                "statement_timeout": str(settings.DATABASE_STATEMENT_TIMEOUT),
            },
        },
    }


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))


@event.listens_for(Pool, "connect")
def on_connect(dbapi_conn, connection_rec):
    """Called when a new connection is created."""
    logger.info(f"New database connection created: {id(dbapi_conn)}")


@event.listens_for(Pool, "invalidate")
def on_invalidate(dbapi_conn, connection_rec, exception):
    """Called when a connection is invalidated."""
    logger.warning(f"Connection invalidated: {id(dbapi_conn)}, reason: {exception}")


AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")


def is_store_unavailable(exc: BaseException) -> bool:
    """
    Whether a SQLAlchemy error means the store itself is unreachable.

    Connection loss and driver-level interface failures qualify; constraint
    violations and bad statements do not.
    """
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (OperationalError, InterfaceError))


async def check_db_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def commit(session: AsyncSession) -> None:
    """
    Commit, rolling back on failure.

    Connection-level failures surface as StoreUnavailableException; anything else
    (constraint violations included) propagates for the caller to classify.
    """
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        if is_store_unavailable(e):
            logger.error(f"Store unavailable during commit: {e}")
            raise StoreUnavailableException() from e
        raise
