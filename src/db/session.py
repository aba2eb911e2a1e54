"""Async engine and session factory.

Surrender, change approval and batch recalculation all nest SAVEPOINTs
inside the request transaction, so every engine built here must support
them. PostgreSQL (asyncpg) does out of the box. For SQLite (aiosqlite),
pysqlite's implicit transaction handling is switched off and BEGIN is
emitted explicitly, otherwise SAVEPOINT and ROLLBACK TO are silently
mis-scoped.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from src.config.settings import Environment, get_settings


class Base(DeclarativeBase):
    pass


def is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine for ``url`` with per-backend options.

    An in-memory SQLite database lives only as long as its connection, so
    it is pinned to a single shared one unless a pool is passed in.
    """
    if is_sqlite(url):
        if make_url(url).database in (None, "", ":memory:"):
            kwargs.setdefault("poolclass", StaticPool)
        engine = create_async_engine(url, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


_settings = get_settings()

engine = build_engine(
    _settings.DATABASE_URL,
    echo=(_settings.ENVIRONMENT == Environment.DEV),
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request: commit on success, roll back on any error.

    Repositories only add, flush and execute; this is the single commit point.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
