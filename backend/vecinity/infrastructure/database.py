"""Database Session Manager — async connection pool, schema sync and seeding.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - Connection pool uses pool_pre_ping for stale connection detection
    - All SQLAlchemy exceptions inside session() mapped to DatabaseError
    - test_connection() and sync_all_models() report failure as False, never raise
    - sync_all_models(force=False) only creates missing tables; force=True drops first

Design Decisions:
    - Singleton db_manager initialized by the process orchestrator before the
      listener is bound
    - expire_on_commit=False: prevents lazy-load issues in async context
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

import vecinity.models  # noqa: F401  (registers tables on Base.metadata)
from vecinity.core.errors import DatabaseError
from vecinity.db.base import Base
from vecinity.db.seed import seed_categories

logger = logging.getLogger(__name__)

DATABASE_KIND = "MySQL"

# Most specific first: IntegrityError and OperationalError subclass DBAPIError
_ERROR_CLASSES = (
    (IntegrityError, "Integrity constraint violated", "commit"),
    (OperationalError, "Connection or operational error", "execute"),
    (DBAPIError, "Database driver error", "query"),
)


def classify_error(exc: SQLAlchemyError) -> tuple[str, str]:
    """Map a SQLAlchemy exception to (message, operation) for DatabaseError."""
    for error_class, message, operation in _ERROR_CLASSES:
        if isinstance(exc, error_class):
            return message, operation
    return "Database operation failed", "unknown"


class DatabaseSessionManager:
    """Manages async database sessions, schema sync and initial data."""

    def __init__(
        self, database_url: str, pool_size: int = 10, max_overflow: int = 5,
    ):
        self.engine: AsyncEngine = create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            message, operation = classify_error(e)
            logger.error(f"{message} ({operation}): {e}")
            raise DatabaseError(message, operation) from e
        finally:
            await session.close()

    async def test_connection(self) -> bool:
        """Probe reachability and credentials with SELECT 1."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            logger.info("Conexión a la base de datos establecida")
            return True
        except Exception as e:
            logger.error(f"DB connection test failed: {e}")
            return False

    async def sync_all_models(self, force: bool = False) -> bool:
        """Reconcile Base.metadata with the database."""
        try:
            async with self.engine.begin() as conn:
                if force:
                    logger.warning("Dropping all tables before sync (force=True)")
                    await conn.run_sync(Base.metadata.drop_all)
                await conn.run_sync(Base.metadata.create_all)
            logger.info(
                f"Modelos sincronizados ({len(Base.metadata.tables)} tablas)",
            )
            return True
        except Exception as e:
            logger.error(f"Model sync failed: {e}")
            return False

    async def create_initial_data(self) -> None:
        """Seed baseline rows; safe to call on every startup."""
        async with self.session() as db:
            await seed_categories(db)
            await db.commit()

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session
