"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePath

# Hey future me - this is the "force rescan" marker! A directory whose children_last_updated is
# the epoch+1ms will ALWAYS look older than its children on disk, so the walker re-enumerates it.
# We stamp it when a row goes stale and again when a stale row is seen again (resurrection).
FORCE_RESCAN_SENTINEL = datetime(1970, 1, 1, 0, 0, 0, 1000, tzinfo=UTC)


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Yo, MediaType is stored as its NAME string in the DB ("MUSIC", "ALBUM"...), not an int.
# ALBUM and DIRECTORY rows are synthetic-ish: ALBUM rows represent album folders, DIRECTORY
# rows represent artist folders (the library tree).
class MediaType(str, Enum):
    """Classification of a catalog entry."""

    DIRECTORY = "DIRECTORY"
    MUSIC = "MUSIC"
    PODCAST = "PODCAST"
    AUDIOBOOK = "AUDIOBOOK"
    VIDEO = "VIDEO"
    ALBUM = "ALBUM"


AUDIO_TYPES: tuple[MediaType, ...] = (
    MediaType.MUSIC,
    MediaType.PODCAST,
    MediaType.AUDIOBOOK,
)

# Songs tier for expunge and starred-file listings (audio + video)
SONG_TYPES: tuple[MediaType, ...] = (*AUDIO_TYPES, MediaType.VIDEO)


@dataclass(frozen=True)
class MusicFolder:
    """A library root. Every folder-scoped query takes an explicit list of these."""

    path: str
    name: str | None = None
    id: int | None = None
    enabled: bool = True

    @staticmethod
    def to_path_list(folders: "list[MusicFolder] | tuple[MusicFolder, ...]") -> list[str]:
        """Extract root paths for an IN (...) clause."""
        return [folder.path for folder in folders]


# Listen up, MediaFile is the DOMAIN ENTITY, not the ORM model! One instance per filesystem
# entry. path is the natural key (stable across rescans), id is the surrogate the DB assigns on
# first insert - it's None until create_or_update() attaches it. present=False means tombstone:
# read operations never return those (except raw get_by_path/get_by_id lookups).
@dataclass
class MediaFile:
    """Catalog entry for a directory, album, track or video."""

    path: str
    type: MediaType
    folder: str | None = None
    id: int | None = None
    format: str | None = None
    title: str | None = None
    album_name: str | None = None
    artist: str | None = None
    album_artist: str | None = None
    disc_number: int | None = None
    track_number: int | None = None
    year: int | None = None
    genre: str | None = None
    bit_rate: int | None = None
    variable_bit_rate: bool = False
    duration_seconds: float | None = None
    file_size: int | None = None
    width: int | None = None
    height: int | None = None
    cover_art_path: str | None = None
    parent_path: str | None = None
    play_count: int | None = 0
    last_played: datetime | None = None
    comment: str | None = None
    created: datetime = field(default_factory=utc_now)
    changed: datetime = field(default_factory=utc_now)
    last_scanned: datetime = field(default_factory=utc_now)
    children_last_updated: datetime = FORCE_RESCAN_SENTINEL
    present: bool = True
    version: int = 0
    mb_release_id: str | None = None
    mb_recording_id: str | None = None

    @property
    def name(self) -> str:
        """Last path component (file or directory name)."""
        return PurePath(self.path).name

    @property
    def is_directory(self) -> bool:
        return self.type in (MediaType.DIRECTORY, MediaType.ALBUM)

    @property
    def is_album(self) -> bool:
        return self.type == MediaType.ALBUM

    @property
    def is_audio(self) -> bool:
        return self.type in AUDIO_TYPES

    @property
    def is_video(self) -> bool:
        return self.type == MediaType.VIDEO

    @property
    def is_stale(self) -> bool:
        """True for tombstones waiting for expunge."""
        return not self.present


@dataclass(frozen=True)
class Genre:
    """Genre aggregate row. Owned by the periodic genre recomputation."""

    name: str
    song_count: int = 0
    album_count: int = 0


@dataclass(frozen=True)
class StarMark:
    """A user's star on a media file."""

    media_file_id: int
    username: str
    created: datetime
    id: int | None = None


# Hey future me - expunge is tiered! Callers delete dependents (songs) before their parents
# (albums, then artist directories) so soft references never dangle mid-expunge.
@dataclass(frozen=True)
class ExpungeCandidates:
    """Ids of non-present rows grouped by type tier."""

    directories: list[int] = field(default_factory=list)
    albums: list[int] = field(default_factory=list)
    songs: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.directories) + len(self.albums) + len(self.songs)


__all__ = [
    "AUDIO_TYPES",
    "FORCE_RESCAN_SENTINEL",
    "SONG_TYPES",
    "ExpungeCandidates",
    "Genre",
    "MediaFile",
    "MediaType",
    "MusicFolder",
    "StarMark",
    "utc_now",
]
