"""Filter criteria for random song sampling."""

from dataclasses import dataclass, field
from datetime import datetime

from mediacatalog.domain.entities import MusicFolder
from mediacatalog.domain.exceptions import ValidationException


# Hey future me - EVERY filter here is optional except music_folders! None means "don't filter
# on this". Ranges are tri-state (lower only / upper only / both / neither) and the null rules
# differ per shape - see infrastructure/persistence/filters.py for the exact semantics.
#
# The star flags are an XOR gate: both True or both False means NO star restriction. That is
# on purpose, don't "fix" it into "both False returns nothing"!
@dataclass(frozen=True)
class RandomSearchCriteria:
    """Criteria for picking a uniformly random sample of songs."""

    count: int
    music_folders: tuple[MusicFolder, ...] = field(default_factory=tuple)
    genre: str | None = None
    format: str | None = None
    from_year: int | None = None
    to_year: int | None = None
    min_last_played: datetime | None = None
    max_last_played: datetime | None = None
    min_album_rating: int | None = None
    max_album_rating: int | None = None
    min_play_count: int | None = None
    max_play_count: int | None = None
    show_starred_songs: bool = False
    show_unstarred_songs: bool = False

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValidationException(f"count must be >= 0, got {self.count}")
        # Accept lists from callers but keep the dataclass hashable
        if not isinstance(self.music_folders, tuple):
            object.__setattr__(self, "music_folders", tuple(self.music_folders))

    @property
    def filters_by_album_rating(self) -> bool:
        return self.min_album_rating is not None or self.max_album_rating is not None

    @property
    def filters_by_star(self) -> bool:
        """True only when exactly one of the star flags is set."""
        return self.show_starred_songs != self.show_unstarred_songs


@dataclass(frozen=True)
class RowAnnotations:
    """Per-user data joined onto a media file when evaluating criteria in memory."""

    starred: bool = False
    album_rating: int | None = None
