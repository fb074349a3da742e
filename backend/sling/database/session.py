"""
Database engine and session factories.

The engine is created from settings and handed to the store explicitly;
nothing here holds a module-level connection.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sling.config import DatabaseConfig
from sling.database.base import Base


def create_engine_from_config(config: DatabaseConfig) -> AsyncEngine:
    """Create an async engine; pooling options only apply to server databases."""
    kwargs: dict = {"echo": config.echo, "pool_pre_ping": True}
    is_sqlite = config.url.startswith("sqlite")

    if is_sqlite:
        # busy timeout so concurrent writers wait instead of failing at once
        kwargs["connect_args"] = {"timeout": config.lock_timeout_seconds}
    else:
        kwargs.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_recycle=config.pool_recycle_seconds,
            pool_timeout=config.lock_timeout_seconds,
        )

    engine = create_async_engine(config.url, **kwargs)
    if is_sqlite:
        serialize_sqlite_transactions(engine)
    return engine


def serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the database write lock up front.

    The sqlite3 driver defers BEGIN until the first write and SQLite has no
    ``SELECT ... FOR UPDATE``, so two units could both read a market before
    either writes. ``BEGIN IMMEDIATE`` makes the second unit wait (up to the
    busy timeout) until the first commits, then read the committed row.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create ledger tables if they do not exist yet."""
    # Import models so they register on Base.metadata
    import sling.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_db_session(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for a session outside a ledger transaction.

    Usage:
        async with get_db_session(factory) as db:
            result = await db.execute(select(MarketRecord))

    Yields:
        AsyncSession: SQLAlchemy async database session
    """
    session = factory()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
