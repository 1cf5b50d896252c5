"""Tests for Database session scope and startup schema validation."""

from pathlib import Path

import pytest
from sqlalchemy import func, select

from mediacatalog.config import DatabaseSettings, Settings
from mediacatalog.domain.entities import MediaFile, MediaType
from mediacatalog.domain.exceptions import ConfigurationError
from mediacatalog.infrastructure.persistence import (
    Database,
    MediaFileModel,
    MediaFileRepository,
)


class TestSchemaValidation:
    async def test_created_schema_is_valid(self, database: Database) -> None:
        await database.validate_schema()

    async def test_empty_database_is_rejected(self, tmp_path: Path) -> None:
        settings = Settings(
            database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        )
        db = Database(settings)
        try:
            with pytest.raises(ConfigurationError, match="missing table media_file"):
                await db.validate_schema()
        finally:
            await db.close()


class TestSessionScope:
    """Transaction boundaries of session_scope()."""

    async def test_commits_on_success(self, database: Database) -> None:
        async with database.session_scope() as session:
            await MediaFileRepository(session, 4).create_or_update(
                MediaFile(path="/music/a.mp3", type=MediaType.MUSIC, folder="/music")
            )

        async with database.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(MediaFileModel))
        assert count == 1

    async def test_rolls_back_and_reraises(self, database: Database) -> None:
        with pytest.raises(RuntimeError):
            async with database.session_scope() as session:
                await MediaFileRepository(session, 4).create_or_update(
                    MediaFile(path="/music/a.mp3", type=MediaType.MUSIC, folder="/music")
                )
                raise RuntimeError("walker crashed")

        async with database.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(MediaFileModel))
        assert count == 0

    def test_is_sqlite(self, database: Database) -> None:
        assert database.is_sqlite is True
