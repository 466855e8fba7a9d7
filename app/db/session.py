"""
Database session and engine configuration.

This file sets up the async database connection using SQLAlchemy + asyncpg,
and the serializable unit-of-work runner used by the reservation path.
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE codes that mean "another transaction won, run yours again":
# serialization_failure, deadlock_detected, and unique_violation (a racing
# insert of the same asset name can surface as 23505 instead of 40001).
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "23505"})


# Create the async database engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,  # When DEBUG=True, prints SQL queries to console
    future=True,
    pool_pre_ping=True,
)

# Create a session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Keeps data accessible after commit
)

# Alias for dependencies
AsyncSessionLocal = async_session_maker

SessionFactory = Callable[[], AsyncSession]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    This is used by FastAPI to provide a database connection to your API endpoints.
    The session is committed when the request succeeds and rolled back otherwise.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_async_session_context(
    session_factory: Optional[SessionFactory] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager helper for async DB sessions (workers, services, tests)."""
    factory = session_factory or async_session_maker
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def sqlstate_of(exc: BaseException) -> Optional[str]:
    """Extract the SQLSTATE code from a driver error wrapped by SQLAlchemy."""
    orig = getattr(exc, "orig", None)
    for source in (orig, getattr(orig, "__cause__", None), exc):
        if source is None:
            continue
        code = getattr(source, "sqlstate", None) or getattr(source, "pgcode", None)
        if code:
            return str(code)
    return None


def is_serialization_conflict(exc: BaseException) -> bool:
    return isinstance(exc, DBAPIError) and sqlstate_of(exc) in RETRYABLE_SQLSTATES


async def run_serializable(
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    session_factory: Optional[SessionFactory] = None,
    max_attempts: Optional[int] = None,
    label: str = "unit_of_work",
) -> T:
    """
    Run ``work`` in its own SERIALIZABLE transaction and commit it.

    ``work`` receives the transactional session and must not commit. When
    PostgreSQL aborts the transaction because a concurrent one conflicted
    with it, the whole function is executed again in a fresh transaction.
    Any other error is raised after rollback, so nothing partial survives.
    """
    factory = session_factory or async_session_maker
    attempts = max(1, max_attempts or settings.SERIALIZABLE_MAX_ATTEMPTS)

    for attempt in range(1, attempts + 1):
        async with factory() as session:
            try:
                await session.connection(execution_options={"isolation_level": "SERIALIZABLE"})
                result = await work(session)
                await session.commit()
                return result
            except DBAPIError as exc:
                await session.rollback()
                if not is_serialization_conflict(exc) or attempt >= attempts:
                    raise
                delay = min(0.5, 0.01 * (2 ** attempt)) + random.uniform(0, 0.02)
                logger.warning(
                    "%s hit a serialization conflict (attempt %s/%s, sqlstate=%s); retrying in %.3fs",
                    label,
                    attempt,
                    attempts,
                    sqlstate_of(exc),
                    delay,
                )
                await asyncio.sleep(delay)
            except Exception:
                await session.rollback()
                raise

    raise RuntimeError(f"{label} exhausted {attempts} serializable attempts")  # pragma: no cover
