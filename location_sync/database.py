"""Database configuration and session management"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from location_sync.config import get_settings
from location_sync.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)

_engine = None
_async_session = None
_initialized = False

# Base class for models
Base = declarative_base()

# Connection error types
CONNECTION_ERRORS = (
    ConnectionError,
    ConnectionRefusedError,
    ConnectionResetError,
    BrokenPipeError,
    TimeoutError,
    asyncio.TimeoutError,
)

# SQLSTATE codes for transactions aborted by a concurrent writer
CONFLICT_SQLSTATES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
}


def is_connection_error(error: Exception) -> bool:
    """Check if an exception indicates a connection problem"""
    if isinstance(error, CONNECTION_ERRORS):
        return True

    if isinstance(error, (DBAPIError, OperationalError, InterfaceError)):
        error_str = str(error).lower()
        keywords = [
            'connection refused', 'connection reset', 'connection closed',
            'broken pipe', 'timeout', 'connect call failed',
            'server closed the connection', 'could not connect',
        ]
        return any(kw in error_str for kw in keywords)

    return False


def is_conflict_error(error: Exception) -> bool:
    """Check if an exception is a transaction abort caused by a concurrent writer"""
    if not isinstance(error, DBAPIError):
        return False

    orig = getattr(error, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True

    error_str = str(error).lower()
    keywords = [
        'could not serialize access', 'deadlock detected',
        'database is locked', 'database table is locked',
    ]
    return any(kw in error_str for kw in keywords)


def _create_engine(database_url: str):
    """Create a new SQLAlchemy async engine"""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, echo=get_settings().debug)
        _install_sqlite_hooks(engine)
        return engine

    return create_async_engine(
        database_url,
        echo=get_settings().debug,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_timeout=30,
        connect_args={
            "server_settings": {"timezone": "UTC", "application_name": "location_sync"},
            "command_timeout": 60,
        }
    )


def _install_sqlite_hooks(engine) -> None:
    """Enforce foreign keys and let SQLAlchemy emit BEGIN so SAVEPOINT works"""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine(database_url: Optional[str] = None):
    """Initialize the database engine and session factory"""
    global _engine, _async_session, _initialized

    url = database_url or get_settings().database_url
    _engine = _create_engine(url)
    _async_session = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )
    _initialized = True
    logger.info(f"Database engine initialized ({_engine.url.drivername})")


def get_engine():
    """Return the engine, initializing from settings on first use"""
    if not _initialized:
        init_engine()
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Return the session factory, initializing from settings on first use"""
    if not _initialized:
        init_engine()
    return _async_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception as e:
            if is_connection_error(e):
                logger.warning(f"Database connection error: {e}")
            raise


@asynccontextmanager
async def unit_of_work(session: AsyncSession):
    """
    Commit everything done inside the block as one transaction.

    Any failure rolls the whole unit back. Transaction aborts caused by a
    concurrent writer are re-raised as ConcurrencyConflict.
    """
    try:
        yield session
        await session.commit()
    except DBAPIError as e:
        await session.rollback()
        if is_conflict_error(e):
            raise ConcurrencyConflict(f"Transaction aborted by a concurrent write: {e.orig}") from e
        raise
    except Exception:
        await session.rollback()
        raise


async def init_db():
    """Initialize database tables"""
    # Import models so they register on Base.metadata
    from location_sync import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def health_check() -> dict:
    """Check database connection health"""
    start = time.time()
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency = (time.time() - start) * 1000
        return {'healthy': True, 'latency_ms': latency, 'error': None}
    except Exception as e:
        latency = (time.time() - start) * 1000
        return {'healthy': False, 'latency_ms': latency, 'error': str(e)}


async def close_db():
    """Close database engine gracefully"""
    global _engine, _async_session, _initialized
    if _engine:
        await _engine.dispose()
        _engine = None
        _async_session = None
        _initialized = False
        logger.info("Database engine closed")
