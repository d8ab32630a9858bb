"""
Database configuration for the Canvass Service.

Sets up the async engine and session factory with SQLModel and SQLAlchemy.
Production schema changes go through Alembic; create_all_tables_for_testing
is for tests and local development only.
"""

from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from services.common import get_async_database_url

# Import all models so they are registered with metadata
from services.canvass.models import (  # noqa: F401
    AuditLogEntry,
    Contact,
    ContactAlias,
    ContactEmail,
    ContactPhone,
    User,
)
from services.canvass.settings import get_settings

# Export metadata for Alembic
metadata = SQLModel.metadata

# Global variables for lazy initialization
_engine: Optional[AsyncEngine] = None
_async_session_local: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Get database engine with lazy initialization."""
    global _engine
    if _engine is None:
        settings = get_settings()
        db_url = settings.db_url_canvass

        engine_kwargs: Dict[str, Any] = {"echo": settings.DB_ECHO}
        if db_url.startswith("postgresql"):
            engine_kwargs.update(
                pool_size=10,
                max_overflow=20,
                pool_timeout=30,
                pool_recycle=3600,
                connect_args={"command_timeout": 10.0, "timeout": 30.0},
            )

        _engine = create_async_engine(get_async_database_url(db_url), **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(_engine.sync_engine, "connect", _register_sqlite_functions)
    return _engine


def _unicode_lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _register_sqlite_functions(dbapi_connection: Any, connection_record: Any) -> None:
    """
    Replace SQLite's ASCII-only lower() with Python's.

    Name search folds case in SQL and in Python; both must agree on names
    like "Émile". PostgreSQL's lower() already folds Unicode.
    """
    dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get async session factory with lazy initialization."""
    global _async_session_local
    if _async_session_local is None:
        _async_session_local = async_sessionmaker(
            get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _async_session_local


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session for dependency injection."""
    session_factory = get_async_session_factory()
    async with session_factory() as session:
        yield session


async def create_all_tables_for_testing() -> None:
    """Create all database tables for testing only. Use Alembic migrations in production."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _async_session_local
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_local = None
