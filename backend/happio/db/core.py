from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

Base = declarative_base()


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _configure_sqlite_connection(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # the builtin lower() only folds ASCII, which breaks searches for names like "Éénhoorn"
    dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def create_engine(url: str) -> AsyncEngine:
    """Build the async engine for `url` (aiosqlite or asyncpg)."""
    if url.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them
        engine = create_async_engine(url, future=True, echo=False, poolclass=NullPool)
        event.listen(engine.sync_engine, "connect", _configure_sqlite_connection)
        return engine
    return create_async_engine(url, future=True, echo=False, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    from . import models  # noqa: F401 - ensure models registered

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
