"""
Database engine and session factory.

Every lifecycle operation is a single unit of work on one AsyncSession. The
engine runs with the configured isolation level (SERIALIZABLE by default) so
two writers racing on the same issue cannot both commit.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool
from sqlmodel import SQLModel

from .config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    str(settings.database.url),
    echo=bool(settings.performance.enable_query_logging),
    pool_pre_ping=True,
    pool_size=settings.database.pool_size,
    max_overflow=settings.database.max_overflow,
    pool_timeout=settings.database.pool_timeout,
    pool_recycle=settings.database.pool_recycle,
    poolclass=AsyncAdaptedQueuePool,
    isolation_level=settings.database.isolation_level,
    connect_args={
        "server_settings": {
            "application_name": settings.api.app_name,
        },
        "command_timeout": 60,
        "timeout": 30,
    },
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Operation results are read after commit
    autoflush=False,
    autocommit=False,
)


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an isolated session for scripts and background jobs.

    Example:
        async with session_scope() as db:
            result = await IssueService.mark_invalid(db, actor, issue_id)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ensure_database_exists() -> None:
    """
    Ensure the database exists, create it if it doesn't.
    Connects to the default postgres database to issue CREATE DATABASE.
    """
    database_url = str(settings.database.url).replace("+asyncpg", "")
    db_name = database_url.rsplit("/", 1)[-1]
    base_url = database_url.rsplit("/", 1)[0] + "/postgres"

    try:
        conn = await asyncpg.connect(database_url)
        await conn.close()
        return
    except asyncpg.InvalidCatalogNameError:
        logger.info(f"Database {db_name} not found, creating it")

    conn = await asyncpg.connect(base_url)
    try:
        await conn.execute(f'CREATE DATABASE "{db_name}"')
    except asyncpg.DuplicateDatabaseError:
        logger.debug(f"Database {db_name} was created concurrently")
    finally:
        await conn.close()


async def init_db() -> None:
    """
    Initialize database tables.
    Skips table creation when the schema is already present.
    """
    await ensure_database_exists()

    # Import models so every table is registered on the metadata
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        result = await conn.execute(
            text(
                "SELECT EXISTS (SELECT FROM information_schema.tables "
                "WHERE table_name = 'issues')"
            )
        )
        if result.scalar():
            logger.info("Database schema already present")
            return

        await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database schema created")


async def close_db() -> None:
    """
    Close database connections.
    Should be called on application shutdown.
    """
    await engine.dispose()
