"""Database session management."""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .base import Base
from .config import get_database_echo, get_database_url

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """
    Create an async engine, enabling foreign keys for SQLite.

    Args:
        url: Database URL
        echo: Log SQL statements

    Returns:
        AsyncEngine instance
    """
    db_engine = create_async_engine(url, echo=echo, future=True, **kwargs)
    if db_engine.dialect.name == "sqlite":
        event.listen(db_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return db_engine


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine(get_database_url(), echo=get_database_echo())

# Create session factory
SessionLocal = create_session_factory(engine)


async def init_db(db_engine: AsyncEngine = engine) -> None:
    """
    Initialize database tables.

    Creates all tables defined in ORM models.
    """
    async with db_engine.begin() as conn:
        # Import all models to register them with Base
        from .models import JobORM, VehicleResultORM  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized successfully")
