"""Shared fixtures for mediacatalog tests.

Hey future me - every test gets its OWN SQLite file under tmp_path. No shared state between
tests, no cleanup order headaches. Tiny chunk sizes make the chunking paths run with a
handful of rows.
"""

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from mediacatalog.config import DatabaseSettings, ScanSettings, Settings
from mediacatalog.domain.entities import MediaFile, MediaType, MusicFolder
from mediacatalog.infrastructure.persistence import Database

MUSIC_ROOT = "/music"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite database."""
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"),
        scan=ScanSettings(present_chunk_size=2, max_concurrent_chunks=2, commit_every=2),
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    """Database with all catalog tables created."""
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    """One transactional session, committed at teardown."""
    async with database.session_scope() as session:
        yield session


@pytest.fixture
def music_folder() -> MusicFolder:
    return MusicFolder(path=MUSIC_ROOT, name="Music", id=1)


@pytest.fixture
def make_file() -> Callable[..., MediaFile]:
    """Factory for MediaFile entities under /music."""

    def _make(
        relative_path: str,
        media_type: MediaType = MediaType.MUSIC,
        **overrides: Any,
    ) -> MediaFile:
        path = f"{MUSIC_ROOT}/{relative_path}"
        values: dict[str, Any] = {
            "path": path,
            "type": media_type,
            "folder": MUSIC_ROOT,
            "parent_path": path.rsplit("/", 1)[0],
            "title": relative_path.rsplit("/", 1)[-1],
            "last_scanned": datetime(2024, 1, 1, tzinfo=UTC),
        }
        values.update(overrides)
        return MediaFile(**values)

    return _make
