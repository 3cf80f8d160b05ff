"""
Async database engine, session factory and unit-of-work helpers.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from feedback_exchange.config import settings


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine; pool and timeout options only apply to PostgreSQL."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=settings.DB_ECHO)

    return create_async_engine(
        database_url,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {"statement_timeout": str(settings.DB_STATEMENT_TIMEOUT_MS)},
        },
    )


engine = build_engine(settings.DATABASE_URL)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session; anything left uncommitted is rolled back on exit."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> AsyncIterator[AsyncSession]:
    """One transaction: COMMIT on success, ROLLBACK on any exception."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def insert_for(session: AsyncSession, table):
    """
    Dialect-specific INSERT construct so callers can use ON CONFLICT DO NOTHING.
    Both PostgreSQL and SQLite support it.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Unsupported dialect for conflict-free insert: {dialect}")


async def init_db(target: AsyncEngine = engine) -> None:
    """Create all tables that do not exist yet."""
    from feedback_exchange.models import tables  # noqa: F401  registers mappers

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(target: AsyncEngine = engine) -> None:
    await target.dispose()
