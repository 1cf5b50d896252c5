"""Database session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mediacatalog.config import Settings
from mediacatalog.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager."""

    def __init__(self, settings: Settings) -> None:
        """Initialize database with settings."""
        self.settings = settings

        engine_kwargs: dict[str, Any] = {
            "echo": settings.database.echo,
            "pool_pre_ping": settings.database.pool_pre_ping,
        }

        # Hey future me - catalog writes assume READ COMMITTED (no serializable cross-row
        # guarantees). Duplicate first-inserts are handled by ON CONFLICT, not by isolation.
        if "postgresql" in settings.database.url:
            engine_kwargs.update(
                {
                    "pool_size": settings.database.pool_size,
                    "max_overflow": settings.database.max_overflow,
                    "pool_timeout": settings.database.pool_timeout,
                    "pool_recycle": settings.database.pool_recycle,
                    "isolation_level": "READ COMMITTED",
                }
            )
        elif settings.database.is_sqlite:
            engine_kwargs.update(
                {
                    "connect_args": {
                        "check_same_thread": False,
                        "timeout": 30,  # Wait up to 30s for lock
                    }
                }
            )

        self._engine = create_async_engine(
            settings.database.url,
            **engine_kwargs,
        )

        if settings.database.is_sqlite:
            self._enable_sqlite_foreign_keys()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def is_sqlite(self) -> bool:
        """Check whether this database is SQLite (single writer)."""
        return self.settings.database.is_sqlite

    def _enable_sqlite_foreign_keys(self) -> None:
        """Enable foreign key constraints for SQLite.

        SQLite has foreign keys disabled by default. This method enables them
        for all connections.
        """

        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            """Set SQLite pragmas on connection."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("Enabled foreign keys for SQLite connection")

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                # Rollback on any exception - this is intentionally broad to ensure
                # transaction integrity. All exceptions are re-raised for proper handling.
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables (for testing only)."""
        from mediacatalog.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all tables (for testing only)."""
        from mediacatalog.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    # Listen up, rows are mapped to entities BY COLUMN NAME. If someone runs an old migration
    # or renames a column by hand, we want to know at startup - not after a scan silently wrote
    # half the fields into nowhere. Extra columns in the DB are fine (ignored), missing ones aren't.
    async def validate_schema(self) -> None:
        """Check that every mapped table and column exists in the live database.

        Raises:
            ConfigurationError: If tables or columns are missing
        """
        from mediacatalog.infrastructure.persistence.models import Base

        def _collect_columns(sync_conn: Connection) -> dict[str, set[str]]:
            inspector = inspect(sync_conn)
            return {
                table: {column["name"] for column in inspector.get_columns(table)}
                for table in inspector.get_table_names()
            }

        async with self._engine.connect() as conn:
            live = await conn.run_sync(_collect_columns)

        problems: list[str] = []
        for table in Base.metadata.sorted_tables:
            if table.name not in live:
                problems.append(f"missing table {table.name}")
                continue
            missing = sorted({c.name for c in table.columns} - live[table.name])
            if missing:
                problems.append(f"{table.name} missing columns {', '.join(missing)}")

        if problems:
            raise ConfigurationError(
                "Database schema does not match catalog mapping: " + "; ".join(problems)
            )
        logger.info("Database schema validated (%d tables)", len(Base.metadata.tables))
