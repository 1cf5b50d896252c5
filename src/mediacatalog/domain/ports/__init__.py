"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence
from datetime import datetime

from mediacatalog.domain.entities import (
    ExpungeCandidates,
    Genre,
    MediaFile,
    MusicFolder,
    StarMark,
)
from mediacatalog.domain.value_objects import RandomSearchCriteria


# Hey future me, IMediaFileRepository is a PORT (Hexagonal Architecture)! The SQLAlchemy
# implementation lives in infrastructure/persistence/repositories.py. Services depend on this
# interface, tests can mock it. Every folder-scoped read returns an EMPTY result for an empty
# folder list - never raise for "nothing to show".
class IMediaFileRepository(ABC):
    """Repository interface for catalog entries."""

    @abstractmethod
    async def get_by_path(self, path: str) -> MediaFile | None:
        """Get a media file by path (tombstones included)."""
        pass

    @abstractmethod
    async def get_by_id(self, media_file_id: int) -> MediaFile | None:
        """Get a media file by surrogate id (tombstones included)."""
        pass

    @abstractmethod
    async def get_children_of(self, path: str) -> list[MediaFile]:
        """Get present direct children of a directory."""
        pass

    @abstractmethod
    async def create_or_update(self, file: MediaFile) -> MediaFile:
        """Upsert by path and attach the surrogate id."""
        pass

    @abstractmethod
    async def get_random_songs(
        self, criteria: RandomSearchCriteria, username: str
    ) -> list[MediaFile]:
        """Random sample of present MUSIC rows matching the criteria."""
        pass

    @abstractmethod
    async def mark_present(
        self,
        paths: Collection[str],
        last_scanned: datetime,
        chunk_size: int | None = None,
    ) -> int:
        """Mark paths present, returning the number of rows updated."""
        pass

    @abstractmethod
    async def mark_present_chunk(
        self, paths: Sequence[str], last_scanned: datetime
    ) -> int:
        """Mark one chunk of paths present in a single statement."""
        pass

    @abstractmethod
    async def mark_non_present(self, last_scanned: datetime) -> int:
        """Sweep rows not scanned since last_scanned to stale."""
        pass

    @abstractmethod
    async def mark_non_present_paths(self, paths: Collection[str]) -> int:
        """Soft-delete explicit paths."""
        pass

    @abstractmethod
    async def get_expunge_candidates(self) -> ExpungeCandidates:
        """Ids of stale rows per type tier."""
        pass

    @abstractmethod
    async def expunge_ids(self, media_file_ids: Sequence[int]) -> int:
        """Physically delete the given rows if they are still stale."""
        pass

    @abstractmethod
    async def expunge(self) -> int:
        """Physically delete every stale row."""
        pass

    @abstractmethod
    async def get_album_count(self, music_folders: Sequence[MusicFolder]) -> int:
        """Count present albums in the folders."""
        pass


class IAnnotationRepository(ABC):
    """Repository interface for per-user annotations (stars, plays, comments)."""

    @abstractmethod
    async def star(self, media_file_ids: Sequence[int], username: str) -> int:
        """Star files for a user, returning the number of star rows written."""
        pass

    @abstractmethod
    async def unstar(self, media_file_ids: Sequence[int], username: str) -> int:
        """Remove stars for a user, returning the number removed."""
        pass

    @abstractmethod
    async def get_star(self, media_file_id: int, username: str) -> StarMark | None:
        """The user's star on the file, or None."""
        pass

    @abstractmethod
    async def get_starred_date(
        self, media_file_id: int, username: str
    ) -> datetime | None:
        """When the user starred the file, or None."""
        pass

    @abstractmethod
    async def record_play(self, media_file_id: int, played_at: datetime) -> bool:
        """Increment play count and set last played."""
        pass

    @abstractmethod
    async def set_comment(self, media_file_id: int, comment: str | None) -> bool:
        """Set the user comment of a media file."""
        pass

    @abstractmethod
    async def delete_orphaned_stars(self) -> int:
        """Delete stars whose media file no longer exists."""
        pass


class IGenreRepository(ABC):
    """Repository interface for genre aggregates."""

    @abstractmethod
    async def get_genres(self, sort_by_album: bool = False) -> list[Genre]:
        """List genres ordered by album or song count."""
        pass

    @abstractmethod
    async def replace_genres(self, genres: Sequence[Genre]) -> int:
        """Replace the whole genre table."""
        pass


class IRatingRepository(ABC):
    """Repository interface for user ratings."""

    @abstractmethod
    async def set_rating(self, path: str, username: str, rating: int | None) -> None:
        """Set (or clear with None) a user's rating for a path."""
        pass

    @abstractmethod
    async def get_rating(self, path: str, username: str) -> int | None:
        """Get a user's rating for a path."""
        pass


__all__ = [
    "IAnnotationRepository",
    "IGenreRepository",
    "IMediaFileRepository",
    "IRatingRepository",
]
