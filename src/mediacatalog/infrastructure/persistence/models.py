"""SQLAlchemy ORM models for the media catalog."""

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from mediacatalog.domain.entities import FORCE_RESCAN_SENTINEL, utc_now


# Hey future me - SQLite doesn't preserve timezone info! When we store UTC datetimes, they come
# back as "naive" (no tzinfo). This helper attaches UTC if missing so comparisons against
# datetime.now(UTC) don't blow up with "can't compare offset-naive and offset-aware".
def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models.

    All models inherit from this to use the same metadata registry.
    """

    pass


# Listen up, MediaFileModel is THE catalog table - one row per directory/album/track/video on
# disk. id is an integer surrogate (star rows and playlists outside this package point at it),
# path is the natural key with a UNIQUE constraint. The unique constraint is what makes
# concurrent first-inserts of the same path safe: the loser turns into an update via
# ON CONFLICT (path) DO UPDATE. Attribute names match the MediaFile dataclass; the DB column
# names are kept short (album, duration) - mapping is always by name, never by position.
class MediaFileModel(Base):
    """SQLAlchemy model for MediaFile entity."""

    __tablename__ = "media_file"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    folder: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    format: Mapped[str | None] = mapped_column(String(20), nullable=True)
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    album_name: Mapped[str | None] = mapped_column("album", String(512), nullable=True)
    artist: Mapped[str | None] = mapped_column(String(512), nullable=True)
    album_artist: Mapped[str | None] = mapped_column(String(512), nullable=True)
    disc_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    genre: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bit_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    variable_bit_rate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    duration_seconds: Mapped[float | None] = mapped_column(
        "duration", Float, nullable=True
    )
    file_size: Mapped[int | None] = mapped_column(sa.BigInteger, nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_art_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    parent_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Hey - play_count is nullable on purpose! Legacy imports can leave it unset and the random
    # song filter has explicit null semantics for it.
    play_count: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    last_played: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    changed: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    last_scanned: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    children_last_updated: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=FORCE_RESCAN_SENTINEL
    )
    present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mb_release_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    mb_recording_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        Index("ix_media_file_folder_type_present", "folder", "type", "present"),
        Index("ix_media_file_parent_path", "parent_path"),
        Index("ix_media_file_album_artist_album", "album_artist", "album"),
        Index("ix_media_file_artist_album", "artist", "album"),
        Index("ix_media_file_last_scanned", "last_scanned"),
        Index("ix_media_file_genre", "genre"),
    )


class GenreModel(Base):
    """SQLAlchemy model for Genre aggregates."""

    __tablename__ = "genre"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    song_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    album_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# Yo, star rows have their OWN surrogate id even though (media_file_id, username) is unique.
# A batch star shares one created timestamp, so listings need id as the tie-breaker to keep
# pagination stable.
class StarredMediaFileModel(Base):
    """SQLAlchemy model for a user's star on a media file."""

    __tablename__ = "starred_media_file"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_file_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("media_file.id", ondelete="CASCADE"),
        nullable=False,
    )
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    created: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint(
            "media_file_id", "username", name="uq_starred_media_file_file_user"
        ),
        Index("ix_starred_media_file_username", "username"),
    )


class UserRatingModel(Base):
    """SQLAlchemy model for a user's rating of a path (albums in practice)."""

    __tablename__ = "user_rating"

    username: Mapped[str] = mapped_column(String(255), primary_key=True)
    path: Mapped[str] = mapped_column(String(1024), primary_key=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)


# Hey future me - this is the OBSOLETE pre-media_file table! Nothing writes to it anymore. The
# upsert engine reads it exactly once per path (on first insert) to carry old comments and play
# stats over. Don't add columns, don't write to it, delete it once every install has migrated.
class MusicFileInfoModel(Base):
    """SQLAlchemy model for the legacy music_file_info table (read-only)."""

    __tablename__ = "music_file_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    play_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_played: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
