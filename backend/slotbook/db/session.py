"""
Async engine and session factory.

The engine is process-scoped, created lazily on first use and released with
dispose_engine() from the application lifespan (or the worker's shutdown).
Tests point it at a throwaway database with init_engine(url).

SQLite: the driver's own transaction handling is disabled and every
transaction starts with BEGIN IMMEDIATE, which takes the database write lock
up front. Concurrent admission transactions therefore queue on the lock the
same way they queue on SELECT ... FOR UPDATE in PostgreSQL.
"""

from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from slotbook.core.config import get_settings
from slotbook.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine(url: Optional[str] = None, **engine_kwargs) -> AsyncEngine:
    """Create (or replace) the process engine and session factory."""
    global _engine, _session_factory
    settings = get_settings()
    url = url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        engine_kwargs.setdefault("connect_args", {"timeout": settings.SQLITE_BUSY_TIMEOUT})
        engine = create_async_engine(url, **engine_kwargs)
        _install_sqlite_locking(engine)
    else:
        engine_kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
        engine_kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
        engine_kwargs.setdefault("pool_timeout", settings.DB_POOL_TIMEOUT)
        engine_kwargs.setdefault("pool_recycle", settings.DB_POOL_RECYCLE)
        engine_kwargs.setdefault("pool_pre_ping", True)
        engine = create_async_engine(url, **engine_kwargs)

    _engine = engine
    _session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("database_engine_created", dialect=engine.dialect.name)
    return engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory() -> async_sessionmaker:
    if _session_factory is None:
        init_engine()
    return _session_factory


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database_engine_disposed")
    _engine = None
    _session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, for reads outside admission."""
    async with get_session_factory()() as session:
        yield session
