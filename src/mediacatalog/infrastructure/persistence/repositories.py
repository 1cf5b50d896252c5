"""Repository implementations for catalog entities."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from dataclasses import fields
from datetime import datetime
from typing import Any

from sqlalchemy import Select, delete, func, insert, inspect, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from mediacatalog.domain.entities import (
    AUDIO_TYPES,
    FORCE_RESCAN_SENTINEL,
    SONG_TYPES,
    ExpungeCandidates,
    Genre,
    MediaFile,
    MediaType,
    MusicFolder,
    StarMark,
    utc_now,
)
from mediacatalog.domain.exceptions import ValidationException
from mediacatalog.domain.ports import (
    IAnnotationRepository,
    IGenreRepository,
    IMediaFileRepository,
    IRatingRepository,
)
from mediacatalog.domain.value_objects import RandomSearchCriteria

from .batch_utils import ensure_batch_total, ensure_unique_items, run_chunked
from .filters import RandomSongQueryBuilder
from .models import (
    GenreModel,
    MediaFileModel,
    MusicFileInfoModel,
    StarredMediaFileModel,
    UserRatingModel,
    ensure_utc_aware,
)

logger = logging.getLogger(__name__)

DEFAULT_PRESENT_CHUNK_SIZE = 30000
# Bound for IN (...) lists of ids
ID_CHUNK_SIZE = 1000

_MEDIA_FILE_TABLE = MediaFileModel.__table__
_DATETIME_FIELDS = frozenset(
    {"last_played", "created", "changed", "last_scanned", "children_last_updated"}
)
# Everything the update path may touch. created is immutable once set, path is the key,
# id is DB-assigned and version is stamped by the repository.
_IMMUTABLE_FIELDS = frozenset({"id", "path", "created", "version"})
_MUTABLE_FIELDS = tuple(
    f.name for f in fields(MediaFile) if f.name not in _IMMUTABLE_FIELDS
)


def _column_values(values: dict[str, Any]) -> dict[str, Any]:
    """Translate ORM attribute keys (album_name) to table column names (album)."""
    columns = inspect(MediaFileModel).columns
    return {columns[key].name: value for key, value in values.items()}


# Hey future me, rows become entities BY NAME: every MediaFile dataclass field has a model
# attribute with the same name. Never map by position - reordering columns in a migration
# would silently shift every value one slot over. Database.validate_schema() checks the live
# table at startup.
def _model_to_entity(model: MediaFileModel) -> MediaFile:
    data = {f.name: getattr(model, f.name) for f in fields(MediaFile)}
    data["type"] = MediaType(model.type)
    for name in _DATETIME_FIELDS:
        data[name] = ensure_utc_aware(data[name])
    return MediaFile(**data)


def _select_files() -> Select[tuple[MediaFileModel]]:
    # populate_existing: bulk UPDATEs bypass the identity map, so always refresh loaded rows
    return select(MediaFileModel).execution_options(populate_existing=True)


def _type_values(types: Sequence[MediaType]) -> list[str]:
    return [media_type.value for media_type in types]


class MediaFileRepository(IMediaFileRepository):
    """SQLAlchemy implementation of the catalog repository.

    Covers lookups, the folder-scoped listings, the random song query, the
    create-or-update upsert and the presence (mark/sweep/expunge) operations.
    """

    # Hey future me, this is the Repository pattern! The session is injected and NOT committed
    # here - Database.session_scope() (or the caller) owns the transaction. schema_version comes
    # from settings.catalog.schema_version and is stamped into every row we write.
    def __init__(self, session: AsyncSession, schema_version: int) -> None:
        """Initialize repository with session and the writer's schema version."""
        self.session = session
        self.schema_version = schema_version

    async def _fetch_all(self, stmt: Select[tuple[MediaFileModel]]) -> list[MediaFile]:
        result = await self.session.execute(stmt)
        return [_model_to_entity(model) for model in result.scalars().all()]

    async def _fetch_one(self, stmt: Select[tuple[MediaFileModel]]) -> MediaFile | None:
        result = await self.session.execute(stmt.limit(1))
        model = result.scalars().first()
        return _model_to_entity(model) if model else None

    async def _count(self, stmt: Select[tuple[int]]) -> int:
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    def _in_folders(music_folders: Sequence[MusicFolder]) -> Any:
        return MediaFileModel.folder.in_(MusicFolder.to_path_list(music_folders))

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get_by_path(self, path: str) -> MediaFile | None:
        """Get a media file by path (tombstones included)."""
        return await self._fetch_one(_select_files().where(MediaFileModel.path == path))

    async def get_by_id(self, media_file_id: int) -> MediaFile | None:
        """Get a media file by surrogate id (tombstones included)."""
        return await self._fetch_one(
            _select_files().where(MediaFileModel.id == media_file_id)
        )

    async def get_children_of(self, path: str) -> list[MediaFile]:
        """Get present direct children of a directory."""
        stmt = (
            _select_files()
            .where(
                MediaFileModel.parent_path == path,
                MediaFileModel.present.is_(True),
            )
            .order_by(MediaFileModel.id)
        )
        return await self._fetch_all(stmt)

    async def get_songs_for_album(self, artist: str, album: str) -> list[MediaFile]:
        """Get present audio files of an album, in disc/track order."""
        stmt = (
            _select_files()
            .where(
                MediaFileModel.album_artist == artist,
                MediaFileModel.album_name == album,
                MediaFileModel.present.is_(True),
                MediaFileModel.type.in_(_type_values(AUDIO_TYPES)),
            )
            .order_by(
                MediaFileModel.disc_number,
                MediaFileModel.track_number,
                MediaFileModel.id,
            )
        )
        return await self._fetch_all(stmt)

    async def get_videos(
        self, count: int, offset: int, music_folders: Sequence[MusicFolder]
    ) -> list[MediaFile]:
        """Get present videos ordered by title."""
        if not music_folders:
            return []
        stmt = (
            _select_files()
            .where(
                MediaFileModel.type == MediaType.VIDEO.value,
                MediaFileModel.present.is_(True),
                self._in_folders(music_folders),
            )
            .order_by(MediaFileModel.title, MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_artist_by_name(
        self, name: str, music_folders: Sequence[MusicFolder]
    ) -> MediaFile | None:
        """Get the artist directory with the given name (lowest id wins)."""
        if not music_folders:
            return None
        stmt = (
            _select_files()
            .where(
                MediaFileModel.type == MediaType.DIRECTORY.value,
                MediaFileModel.artist == name,
                MediaFileModel.present.is_(True),
                self._in_folders(music_folders),
            )
            .order_by(MediaFileModel.id)
        )
        return await self._fetch_one(stmt)

    # =========================================================================
    # UPSERT ENGINE
    # =========================================================================

    def _mutable_values(self, file: MediaFile) -> dict[str, Any]:
        values = {name: getattr(file, name) for name in _MUTABLE_FIELDS}
        values["type"] = file.type.value
        values["version"] = self.schema_version
        return values

    # Listen up, create_or_update is the heart of every scan! Three steps:
    # 1. UPDATE ... WHERE path = ? (everything except created; version always rewritten)
    # 2. 0 rows -> first sighting: pull old comment/play stats from the legacy
    #    music_file_info table (ONLY here, never on the update path - that would resurrect stale
    #    legacy data over fresh values), then INSERT. The insert is ON CONFLICT (path) DO UPDATE
    #    so two scans racing on the same new path both succeed and converge.
    # 3. Re-read the id by path and attach it to the entity so the caller can link dependents
    #    right away.
    async def create_or_update(self, file: MediaFile) -> MediaFile:
        """Create or update a media file keyed by path.

        Args:
            file: Entity to persist (its id/version are updated in place)

        Returns:
            The same entity with id and version set
        """
        logger.debug("Creating/updating media file at %s", file.path)

        values = self._mutable_values(file)
        stmt = (
            update(_MEDIA_FILE_TABLE)
            .where(_MEDIA_FILE_TABLE.c.path == file.path)
            .values(**_column_values(values))
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 0:  # type: ignore[attr-defined]
            await self._apply_legacy_file_info(file)
            await self._insert(file)

        id_result = await self.session.execute(
            select(MediaFileModel.id).where(MediaFileModel.path == file.path)
        )
        file.id = id_result.scalar_one()
        file.version = self.schema_version
        return file

    async def _apply_legacy_file_info(self, file: MediaFile) -> None:
        """One-time migration shim: seed a new row from music_file_info."""
        result = await self.session.execute(
            select(MusicFileInfoModel).where(MusicFileInfoModel.path == file.path)
        )
        legacy = result.scalar_one_or_none()
        if legacy is None:
            return

        logger.debug("Migrating legacy file info for %s", file.path)
        file.comment = legacy.comment
        file.last_played = ensure_utc_aware(legacy.last_played)
        file.play_count = legacy.play_count

    async def _insert(self, file: MediaFile) -> None:
        row = _column_values(
            {**self._mutable_values(file), "path": file.path, "created": file.created}
        )
        conflict_set = {
            key: value for key, value in row.items() if key not in ("path", "created")
        }

        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            stmt: Any = (
                sqlite_insert(_MEDIA_FILE_TABLE)
                .values(**row)
                .on_conflict_do_update(
                    index_elements=[_MEDIA_FILE_TABLE.c.path], set_=conflict_set
                )
            )
        elif dialect == "postgresql":
            stmt = (
                pg_insert(_MEDIA_FILE_TABLE)
                .values(**row)
                .on_conflict_do_update(
                    index_elements=[_MEDIA_FILE_TABLE.c.path], set_=conflict_set
                )
            )
        else:
            stmt = insert(_MEDIA_FILE_TABLE).values(**row)

        await self.session.execute(stmt)

    # =========================================================================
    # PRESENCE (mark / sweep / expunge)
    # =========================================================================

    async def mark_present_chunk(
        self, paths: Sequence[str], last_scanned: datetime
    ) -> int:
        """Mark one chunk of paths present in a single statement.

        Returns:
            Number of rows matched by the statement
        """
        if not paths:
            return 0
        stmt = (
            update(_MEDIA_FILE_TABLE)
            .where(_MEDIA_FILE_TABLE.c.path.in_(list(paths)))
            .values(present=True, last_scanned=last_scanned)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount)  # type: ignore[attr-defined]

    # Hey future me - this runs the chunks SEQUENTIALLY on this repository's session (an
    # AsyncSession can't run statements concurrently). PresenceReconciler.mark_present does the
    # concurrent version with one session per chunk.
    async def mark_present(
        self,
        paths: Collection[str],
        last_scanned: datetime,
        chunk_size: int | None = None,
    ) -> int:
        """Mark paths present and stamp last_scanned.

        Raises:
            BatchSizeMismatchError: If the number of updated rows differs from len(paths)
        """
        if not paths:
            return 0
        path_list = list(paths)
        ensure_unique_items("mark_present", path_list)
        outcome = await run_chunked(
            path_list,
            chunk_size or DEFAULT_PRESENT_CHUNK_SIZE,
            lambda chunk: self.mark_present_chunk(chunk, last_scanned),
        )
        ensure_batch_total("mark_present", len(path_list), outcome.affected)
        return outcome.affected

    async def mark_non_present(self, last_scanned: datetime) -> int:
        """Sweep every present row not scanned since last_scanned to stale.

        children_last_updated gets the force-rescan sentinel so a later
        resurrection re-enumerates the directory's children.
        """
        stmt = (
            update(_MEDIA_FILE_TABLE)
            .where(
                _MEDIA_FILE_TABLE.c.last_scanned < last_scanned,
                _MEDIA_FILE_TABLE.c.present.is_(True),
            )
            .values(present=False, children_last_updated=FORCE_RESCAN_SENTINEL)
        )
        result = await self.session.execute(stmt)
        swept = int(result.rowcount)  # type: ignore[attr-defined]
        logger.info("Marked %d media files as non-present", swept)
        return swept

    async def mark_non_present_paths(self, paths: Collection[str]) -> int:
        """Soft-delete explicit paths (present=false + force-rescan sentinel).

        Raises:
            BatchSizeMismatchError: If paths contain duplicates or unknown paths
        """
        if not paths:
            return 0
        path_list = list(paths)
        ensure_unique_items("mark_non_present_paths", path_list)

        async def _mark(chunk: Sequence[str]) -> int:
            stmt = (
                update(_MEDIA_FILE_TABLE)
                .where(_MEDIA_FILE_TABLE.c.path.in_(list(chunk)))
                .values(present=False, children_last_updated=FORCE_RESCAN_SENTINEL)
            )
            result = await self.session.execute(stmt)
            return int(result.rowcount)  # type: ignore[attr-defined]

        outcome = await run_chunked(path_list, DEFAULT_PRESENT_CHUNK_SIZE, _mark)
        ensure_batch_total("mark_non_present_paths", len(path_list), outcome.affected)
        return outcome.affected

    async def _stale_ids(self, types: Sequence[MediaType]) -> list[int]:
        stmt = (
            select(MediaFileModel.id)
            .where(
                MediaFileModel.type.in_(_type_values(types)),
                MediaFileModel.present.is_(False),
            )
            .order_by(MediaFileModel.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_artist_expunge_candidates(self) -> list[int]:
        return await self._stale_ids([MediaType.DIRECTORY])

    async def get_album_expunge_candidates(self) -> list[int]:
        return await self._stale_ids([MediaType.ALBUM])

    async def get_song_expunge_candidates(self) -> list[int]:
        return await self._stale_ids(SONG_TYPES)

    async def get_expunge_candidates(self) -> ExpungeCandidates:
        """Ids of stale rows per type tier."""
        return ExpungeCandidates(
            directories=await self.get_artist_expunge_candidates(),
            albums=await self.get_album_expunge_candidates(),
            songs=await self.get_song_expunge_candidates(),
        )

    # Yo, the present=false guard matters: a candidate collected before a concurrent scan
    # resurrected it must NOT be deleted.
    async def expunge_ids(self, media_file_ids: Sequence[int]) -> int:
        """Physically delete the given rows if they are still stale."""
        if not media_file_ids:
            return 0

        async def _delete(chunk: Sequence[int]) -> int:
            stmt = delete(_MEDIA_FILE_TABLE).where(
                _MEDIA_FILE_TABLE.c.id.in_(list(chunk)),
                _MEDIA_FILE_TABLE.c.present.is_(False),
            )
            result = await self.session.execute(stmt)
            return int(result.rowcount)  # type: ignore[attr-defined]

        outcome = await run_chunked(list(media_file_ids), ID_CHUNK_SIZE, _delete)
        return outcome.affected

    async def expunge(self) -> int:
        """Physically delete every stale row. Idempotent."""
        result = await self.session.execute(
            delete(_MEDIA_FILE_TABLE).where(_MEDIA_FILE_TABLE.c.present.is_(False))
        )
        deleted = int(result.rowcount)  # type: ignore[attr-defined]
        logger.info("Expunged %d media files", deleted)
        return deleted

    # =========================================================================
    # ALBUM LISTINGS
    # =========================================================================

    def _albums(self, music_folders: Sequence[MusicFolder]) -> Select[tuple[MediaFileModel]]:
        return _select_files().where(
            MediaFileModel.type == MediaType.ALBUM.value,
            MediaFileModel.present.is_(True),
            self._in_folders(music_folders),
        )

    async def get_most_frequently_played_albums(
        self, offset: int, count: int, music_folders: Sequence[MusicFolder]
    ) -> list[MediaFile]:
        """Albums with play_count > 0, most played first."""
        if not music_folders:
            return []
        stmt = (
            self._albums(music_folders)
            .where(MediaFileModel.play_count > 0)
            .order_by(MediaFileModel.play_count.desc(), MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_most_recently_played_albums(
        self, offset: int, count: int, music_folders: Sequence[MusicFolder]
    ) -> list[MediaFile]:
        """Albums that were ever played, most recent first."""
        if not music_folders:
            return []
        stmt = (
            self._albums(music_folders)
            .where(MediaFileModel.last_played.is_not(None))
            .order_by(MediaFileModel.last_played.desc(), MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_newest_albums(
        self, offset: int, count: int, music_folders: Sequence[MusicFolder]
    ) -> list[MediaFile]:
        """Albums by creation time, newest first."""
        if not music_folders:
            return []
        stmt = (
            self._albums(music_folders)
            .order_by(MediaFileModel.created.desc(), MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_alphabetical_albums(
        self,
        offset: int,
        count: int,
        by_artist: bool,
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        """Albums sorted by name, optionally by artist first."""
        if not music_folders:
            return []
        order_by: list[Any] = [MediaFileModel.album_name, MediaFileModel.id]
        if by_artist:
            order_by.insert(0, MediaFileModel.artist)
        stmt = (
            self._albums(music_folders).order_by(*order_by).limit(count).offset(offset)
        )
        return await self._fetch_all(stmt)

    # Hey - from_year > to_year is NOT an error, it means "walk the range backwards". The
    # between() bounds get swapped and the order flips to year DESC.
    async def get_albums_by_year(
        self,
        offset: int,
        count: int,
        from_year: int,
        to_year: int,
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        """Albums within a year range, ordered in the direction of the range."""
        if not music_folders:
            return []
        if from_year <= to_year:
            year_filter = MediaFileModel.year.between(from_year, to_year)
            year_order = MediaFileModel.year.asc()
        else:
            year_filter = MediaFileModel.year.between(to_year, from_year)
            year_order = MediaFileModel.year.desc()
        stmt = (
            self._albums(music_folders)
            .where(year_filter)
            .order_by(year_order, MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_albums_by_genre(
        self,
        offset: int,
        count: int,
        genre: str,
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        """Albums in a genre."""
        if not music_folders:
            return []
        stmt = (
            self._albums(music_folders)
            .where(MediaFileModel.genre == genre)
            .order_by(MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    # =========================================================================
    # SONG LISTINGS
    # =========================================================================

    async def get_songs_by_genre(
        self,
        genre: str,
        offset: int,
        count: int,
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        """Audio files in a genre."""
        if not music_folders:
            return []
        stmt = (
            _select_files()
            .where(
                MediaFileModel.type.in_(_type_values(AUDIO_TYPES)),
                MediaFileModel.genre == genre,
                MediaFileModel.present.is_(True),
                self._in_folders(music_folders),
            )
            .order_by(MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_songs_by_artist(
        self, artist: str, offset: int, count: int
    ) -> list[MediaFile]:
        """Audio files by artist across all folders."""
        stmt = (
            _select_files()
            .where(
                MediaFileModel.type.in_(_type_values(AUDIO_TYPES)),
                MediaFileModel.artist == artist,
                MediaFileModel.present.is_(True),
            )
            .order_by(MediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_song_by_artist_and_title(
        self, artist: str, title: str, music_folders: Sequence[MusicFolder]
    ) -> MediaFile | None:
        """Exact artist + title match among present songs (lowest id wins)."""
        if not music_folders or not artist or not artist.strip():
            return None
        if not title or not title.strip():
            return None
        stmt = (
            _select_files()
            .where(
                MediaFileModel.artist == artist,
                MediaFileModel.title == title,
                MediaFileModel.type == MediaType.MUSIC.value,
                MediaFileModel.present.is_(True),
                self._in_folders(music_folders),
            )
            .order_by(MediaFileModel.id)
        )
        return await self._fetch_one(stmt)

    async def get_random_songs(
        self, criteria: RandomSearchCriteria, username: str
    ) -> list[MediaFile]:
        """Uniformly random sample of present MUSIC rows matching the criteria.

        No offset: every call draws a fresh sample. An empty folder scope
        returns [] without touching the database.
        """
        builder = RandomSongQueryBuilder(criteria, username)
        if builder.is_empty_scope:
            return []
        return await self._fetch_all(builder.statement())

    # =========================================================================
    # STARRED LISTINGS
    # =========================================================================

    async def _starred(
        self,
        offset: int,
        count: int,
        username: str,
        types: Sequence[MediaType],
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        if not music_folders:
            return []
        stmt = (
            _select_files()
            .join(
                StarredMediaFileModel,
                StarredMediaFileModel.media_file_id == MediaFileModel.id,
            )
            .where(
                MediaFileModel.present.is_(True),
                MediaFileModel.type.in_(_type_values(types)),
                self._in_folders(music_folders),
                StarredMediaFileModel.username == username,
            )
            .order_by(StarredMediaFileModel.created.desc(), StarredMediaFileModel.id)
            .limit(count)
            .offset(offset)
        )
        return await self._fetch_all(stmt)

    async def get_starred_albums(
        self,
        offset: int,
        count: int,
        username: str,
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        """Albums starred by the user, most recently starred first."""
        return await self._starred(
            offset, count, username, [MediaType.ALBUM], music_folders
        )

    async def get_starred_directories(
        self,
        offset: int,
        count: int,
        username: str,
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        """Artist directories starred by the user."""
        return await self._starred(
            offset, count, username, [MediaType.DIRECTORY], music_folders
        )

    async def get_starred_files(
        self,
        offset: int,
        count: int,
        username: str,
        music_folders: Sequence[MusicFolder],
    ) -> list[MediaFile]:
        """Songs and videos starred by the user."""
        return await self._starred(offset, count, username, SONG_TYPES, music_folders)

    # =========================================================================
    # COUNTS
    # =========================================================================

    async def get_album_count(self, music_folders: Sequence[MusicFolder]) -> int:
        """Count present albums in the folders."""
        if not music_folders:
            return 0
        stmt = select(func.count(MediaFileModel.id)).where(
            MediaFileModel.type == MediaType.ALBUM.value,
            MediaFileModel.present.is_(True),
            self._in_folders(music_folders),
        )
        return await self._count(stmt)

    async def get_played_album_count(self, music_folders: Sequence[MusicFolder]) -> int:
        """Count present albums that were played at least once."""
        if not music_folders:
            return 0
        stmt = select(func.count(MediaFileModel.id)).where(
            MediaFileModel.type == MediaType.ALBUM.value,
            MediaFileModel.play_count > 0,
            MediaFileModel.present.is_(True),
            self._in_folders(music_folders),
        )
        return await self._count(stmt)

    async def get_starred_album_count(
        self, username: str, music_folders: Sequence[MusicFolder]
    ) -> int:
        """Count present albums starred by the user."""
        if not music_folders:
            return 0
        stmt = (
            select(func.count(MediaFileModel.id))
            .join(
                StarredMediaFileModel,
                StarredMediaFileModel.media_file_id == MediaFileModel.id,
            )
            .where(
                MediaFileModel.type == MediaType.ALBUM.value,
                MediaFileModel.present.is_(True),
                self._in_folders(music_folders),
                StarredMediaFileModel.username == username,
            )
        )
        return await self._count(stmt)


class AnnotationRepository(IAnnotationRepository):
    """Per-user annotations: stars, play counts and comments."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    # Hey future me - star() is unstar-then-insert with ONE shared timestamp! A batch star looks
    # like a single event in "recently starred" listings; the star row id breaks the tie. Ids are
    # de-duplicated first, the (media_file_id, username) unique constraint would reject repeats.
    async def star(self, media_file_ids: Sequence[int], username: str) -> int:
        """Star files for a user.

        Returns:
            Number of star rows written

        Raises:
            BatchSizeMismatchError: If fewer star rows exist afterwards than requested
        """
        if not media_file_ids:
            return 0
        unique_ids = list(dict.fromkeys(media_file_ids))
        await self.unstar(unique_ids, username)
        now = utc_now()

        async def _insert(chunk: Sequence[int]) -> int:
            await self.session.execute(
                insert(StarredMediaFileModel.__table__),
                [
                    {"media_file_id": file_id, "username": username, "created": now}
                    for file_id in chunk
                ],
            )
            written = await self.session.execute(
                select(func.count(StarredMediaFileModel.id)).where(
                    StarredMediaFileModel.username == username,
                    StarredMediaFileModel.media_file_id.in_(list(chunk)),
                )
            )
            return int(written.scalar_one())

        outcome = await run_chunked(unique_ids, ID_CHUNK_SIZE, _insert)
        ensure_batch_total("star", len(unique_ids), outcome.affected)
        return outcome.affected

    async def unstar(self, media_file_ids: Sequence[int], username: str) -> int:
        """Remove a user's stars. Removing nothing is fine."""
        if not media_file_ids:
            return 0

        async def _delete(chunk: Sequence[int]) -> int:
            stmt = delete(StarredMediaFileModel.__table__).where(
                StarredMediaFileModel.__table__.c.media_file_id.in_(list(chunk)),
                StarredMediaFileModel.__table__.c.username == username,
            )
            result = await self.session.execute(stmt)
            return int(result.rowcount)  # type: ignore[attr-defined]

        outcome = await run_chunked(list(media_file_ids), ID_CHUNK_SIZE, _delete)
        return outcome.affected

    async def get_star(self, media_file_id: int, username: str) -> StarMark | None:
        """The user's star on the file, or None."""
        result = await self.session.execute(
            select(StarredMediaFileModel)
            .where(
                StarredMediaFileModel.media_file_id == media_file_id,
                StarredMediaFileModel.username == username,
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return StarMark(
            media_file_id=model.media_file_id,
            username=model.username,
            created=ensure_utc_aware(model.created),  # type: ignore[arg-type]
            id=model.id,
        )

    async def get_starred_date(
        self, media_file_id: int, username: str
    ) -> datetime | None:
        """When the user starred the file, or None."""
        star = await self.get_star(media_file_id, username)
        return star.created if star is not None else None

    async def record_play(self, media_file_id: int, played_at: datetime) -> bool:
        """Increment play count (unset counts as 0) and set last played."""
        stmt = (
            update(_MEDIA_FILE_TABLE)
            .where(_MEDIA_FILE_TABLE.c.id == media_file_id)
            .values(
                play_count=func.coalesce(_MEDIA_FILE_TABLE.c.play_count, 0) + 1,
                last_played=played_at,
            )
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def set_comment(self, media_file_id: int, comment: str | None) -> bool:
        """Set the user comment of a media file."""
        stmt = (
            update(_MEDIA_FILE_TABLE)
            .where(_MEDIA_FILE_TABLE.c.id == media_file_id)
            .values(comment=comment)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def delete_orphaned_stars(self) -> int:
        """Delete stars whose media file was expunged."""
        star_table = StarredMediaFileModel.__table__
        file_exists = (
            select(_MEDIA_FILE_TABLE.c.id)
            .where(_MEDIA_FILE_TABLE.c.id == star_table.c.media_file_id)
            .exists()
        )
        result = await self.session.execute(delete(star_table).where(~file_exists))
        return int(result.rowcount)  # type: ignore[attr-defined]


class GenreRepository(IGenreRepository):
    """Genre aggregate table. Fully replaced on every recomputation."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_genres(self, sort_by_album: bool = False) -> list[Genre]:
        """List genres ordered by album or song count, then name descending."""
        count_column = (
            GenreModel.album_count if sort_by_album else GenreModel.song_count
        )
        result = await self.session.execute(
            select(GenreModel)
            .order_by(count_column, GenreModel.name.desc())
            .execution_options(populate_existing=True)
        )
        return [
            Genre(name=m.name, song_count=m.song_count, album_count=m.album_count)
            for m in result.scalars().all()
        ]

    # Listen up, delete-all + insert is only atomic for readers if the CALLER wraps it in one
    # transaction (Database.session_scope does). This method adds no atomicity of its own.
    async def replace_genres(self, genres: Sequence[Genre]) -> int:
        """Replace the whole genre table.

        Raises:
            BatchSizeMismatchError: If the table doesn't hold exactly len(genres) rows afterwards
        """
        await self.session.execute(delete(GenreModel.__table__))
        if not genres:
            return 0

        await self.session.execute(
            insert(GenreModel.__table__),
            [
                {
                    "name": genre.name,
                    "song_count": genre.song_count,
                    "album_count": genre.album_count,
                }
                for genre in genres
            ],
        )
        result = await self.session.execute(select(func.count()).select_from(GenreModel))
        inserted = int(result.scalar_one())
        ensure_batch_total("replace_genres", len(genres), inserted)
        return inserted


class RatingRepository(IRatingRepository):
    """User ratings keyed by (username, path)."""

    MIN_RATING = 1
    MAX_RATING = 5

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def set_rating(self, path: str, username: str, rating: int | None) -> None:
        """Set a rating, or clear it with None."""
        if rating is not None and not self.MIN_RATING <= rating <= self.MAX_RATING:
            raise ValidationException(
                f"Rating must be between {self.MIN_RATING} and {self.MAX_RATING}, got {rating}"
            )

        rating_table = UserRatingModel.__table__
        await self.session.execute(
            delete(rating_table).where(
                rating_table.c.path == path,
                rating_table.c.username == username,
            )
        )
        if rating is not None:
            await self.session.execute(
                insert(rating_table).values(path=path, username=username, rating=rating)
            )

    async def get_rating(self, path: str, username: str) -> int | None:
        """Get a user's rating for a path."""
        result = await self.session.execute(
            select(UserRatingModel.rating).where(
                UserRatingModel.path == path,
                UserRatingModel.username == username,
            )
        )
        return result.scalar_one_or_none()
