import logging
from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config.settings import settings
from src.mk_common.errors import TransientBackendError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models across modules."""

    pass


engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: yields an AsyncSession, auto-closes after request."""
    async with async_session_factory() as session:
        yield session


_TRANSIENT = (
    OperationalError,
    DBAPIError,
    RedisConnectionError,
    RedisTimeoutError,
    OSError,
)


@contextmanager
def backend_errors(operation: str) -> Iterator[None]:
    """Translate driver/network failures into TransientBackendError.

    Wrap every call that crosses the backend boundary (query, write,
    publish, subscribe). Domain errors pass through untouched.
    """
    try:
        yield
    except _TRANSIENT as exc:
        raise TransientBackendError(f"{operation} failed: {exc.__class__.__name__}") from exc


async def commit(db: AsyncSession, operation: str) -> None:
    """Commit the session; a lost connection surfaces as TransientBackendError."""
    with backend_errors(f"commit {operation}"):
        await db.commit()


async def rollback(db: AsyncSession) -> None:
    """Roll back after a failed write.

    A connection that is already gone cannot roll back. That is logged and
    the caller's original failure stands.
    """
    try:
        await db.rollback()
    except _TRANSIENT as exc:
        logger.warning("Rollback failed: %s", exc.__class__.__name__)
