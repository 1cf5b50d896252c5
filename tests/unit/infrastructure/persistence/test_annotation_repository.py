"""Tests for stars, plays, comments, genres and ratings."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mediacatalog.domain.entities import Genre, MediaFile
from mediacatalog.domain.exceptions import ValidationException
from mediacatalog.infrastructure.persistence import repositories
from mediacatalog.infrastructure.persistence.models import StarredMediaFileModel
from mediacatalog.infrastructure.persistence.repositories import (
    AnnotationRepository,
    GenreRepository,
    MediaFileRepository,
    RatingRepository,
)

MakeFile = Callable[..., MediaFile]

T1 = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)
T2 = datetime(2024, 5, 2, 8, 0, tzinfo=UTC)


@pytest.fixture
def annotations(session: AsyncSession) -> AnnotationRepository:
    return AnnotationRepository(session)


@pytest.fixture
async def saved_file(session: AsyncSession, make_file: MakeFile) -> MediaFile:
    return await MediaFileRepository(session, schema_version=4).create_or_update(
        make_file("A/song.mp3", play_count=None)
    )


async def _star_rows(session: AsyncSession) -> int:
    return int(
        await session.scalar(select(func.count()).select_from(StarredMediaFileModel))
    )


def _freeze(monkeypatch: pytest.MonkeyPatch, *moments: datetime) -> None:
    timeline: Iterator[datetime] = iter(moments)
    monkeypatch.setattr(repositories, "utc_now", lambda: next(timeline))


class TestStars:
    """Star / unstar semantics."""

    async def test_star_twice_keeps_one_row_with_second_timestamp(
        self,
        session: AsyncSession,
        annotations: AnnotationRepository,
        saved_file: MediaFile,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _freeze(monkeypatch, T1, T2)

        await annotations.star([saved_file.id], "alice")  # type: ignore[list-item]
        await annotations.star([saved_file.id], "alice")  # type: ignore[list-item]

        assert await _star_rows(session) == 1
        assert await annotations.get_starred_date(saved_file.id, "alice") == T2  # type: ignore[arg-type]

    async def test_duplicate_ids_in_one_call(
        self, session: AsyncSession, annotations: AnnotationRepository, saved_file: MediaFile
    ) -> None:
        written = await annotations.star([saved_file.id, saved_file.id], "alice")  # type: ignore[list-item]

        assert written == 1
        assert await _star_rows(session) == 1

    async def test_batch_star_shares_timestamp(
        self,
        session: AsyncSession,
        annotations: AnnotationRepository,
        make_file: MakeFile,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        repo = MediaFileRepository(session, schema_version=4)
        a = await repo.create_or_update(make_file("a.mp3"))
        b = await repo.create_or_update(make_file("b.mp3"))
        _freeze(monkeypatch, T1)

        await annotations.star([a.id, b.id], "alice")  # type: ignore[list-item]

        assert await annotations.get_starred_date(a.id, "alice") == T1  # type: ignore[arg-type]
        assert await annotations.get_starred_date(b.id, "alice") == T1  # type: ignore[arg-type]

    async def test_get_star_returns_mark(
        self,
        annotations: AnnotationRepository,
        saved_file: MediaFile,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _freeze(monkeypatch, T1)
        await annotations.star([saved_file.id], "alice")  # type: ignore[list-item]

        star = await annotations.get_star(saved_file.id, "alice")  # type: ignore[arg-type]

        assert star is not None
        assert star.id is not None
        assert star.media_file_id == saved_file.id
        assert star.username == "alice"
        assert star.created == T1
        assert await annotations.get_star(saved_file.id, "bob") is None  # type: ignore[arg-type]

    async def test_stars_are_per_user(
        self, annotations: AnnotationRepository, saved_file: MediaFile
    ) -> None:
        await annotations.star([saved_file.id], "alice")  # type: ignore[list-item]

        assert await annotations.get_starred_date(saved_file.id, "bob") is None  # type: ignore[arg-type]

    async def test_unstar(
        self, session: AsyncSession, annotations: AnnotationRepository, saved_file: MediaFile
    ) -> None:
        await annotations.star([saved_file.id], "alice")  # type: ignore[list-item]

        assert await annotations.unstar([saved_file.id], "alice") == 1  # type: ignore[list-item]
        assert await annotations.unstar([saved_file.id], "alice") == 0  # type: ignore[list-item]
        assert await _star_rows(session) == 0

    async def test_empty_id_list_is_noop(self, annotations: AnnotationRepository) -> None:
        assert await annotations.star([], "alice") == 0
        assert await annotations.unstar([], "alice") == 0

    async def test_no_orphans_after_file_delete(
        self, session: AsyncSession, annotations: AnnotationRepository, make_file: MakeFile
    ) -> None:
        repo = MediaFileRepository(session, schema_version=4)
        file = await repo.create_or_update(make_file("a.mp3", present=False))
        await annotations.star([file.id], "alice")  # type: ignore[list-item]

        await repo.expunge()

        assert await annotations.delete_orphaned_stars() == 0
        assert await _star_rows(session) == 0


class TestPlaysAndComments:
    async def test_record_play_treats_null_count_as_zero(
        self, session: AsyncSession, annotations: AnnotationRepository, saved_file: MediaFile
    ) -> None:
        assert await annotations.record_play(saved_file.id, T1) is True  # type: ignore[arg-type]
        assert await annotations.record_play(saved_file.id, T2) is True  # type: ignore[arg-type]

        loaded = await MediaFileRepository(session, 4).get_by_id(saved_file.id)  # type: ignore[arg-type]
        assert loaded is not None
        assert loaded.play_count == 2
        assert loaded.last_played == T2

    async def test_record_play_unknown_file(self, annotations: AnnotationRepository) -> None:
        assert await annotations.record_play(12345, T1) is False

    async def test_set_comment(
        self, session: AsyncSession, annotations: AnnotationRepository, saved_file: MediaFile
    ) -> None:
        assert await annotations.set_comment(saved_file.id, "remaster") is True  # type: ignore[arg-type]

        loaded = await MediaFileRepository(session, 4).get_by_id(saved_file.id)  # type: ignore[arg-type]
        assert loaded is not None
        assert loaded.comment == "remaster"


class TestGenres:
    """Genre table replace + ordering."""

    async def test_replace_and_order_by_song_count(self, session: AsyncSession) -> None:
        repo = GenreRepository(session)

        inserted = await repo.replace_genres(
            [Genre("Rock", 10, 2), Genre("Jazz", 3, 5), Genre("Pop", 3, 1)]
        )

        assert inserted == 3
        assert [g.name for g in await repo.get_genres()] == ["Pop", "Jazz", "Rock"]
        assert [g.name for g in await repo.get_genres(sort_by_album=True)] == [
            "Pop",
            "Rock",
            "Jazz",
        ]

    async def test_replace_drops_previous_rows(self, session: AsyncSession) -> None:
        repo = GenreRepository(session)
        await repo.replace_genres([Genre("Rock", 1, 1), Genre("Jazz", 1, 1)])

        await repo.replace_genres([Genre("Blues", 4, 2)])

        assert await repo.get_genres() == [Genre("Blues", 4, 2)]

    async def test_replace_with_nothing_empties_table(self, session: AsyncSession) -> None:
        repo = GenreRepository(session)
        await repo.replace_genres([Genre("Rock", 1, 1)])

        assert await repo.replace_genres([]) == 0
        assert await repo.get_genres() == []


class TestRatings:
    async def test_set_get_and_clear(self, session: AsyncSession) -> None:
        repo = RatingRepository(session)

        await repo.set_rating("/music/A/B", "alice", 4)
        assert await repo.get_rating("/music/A/B", "alice") == 4

        await repo.set_rating("/music/A/B", "alice", 2)
        assert await repo.get_rating("/music/A/B", "alice") == 2

        await repo.set_rating("/music/A/B", "alice", None)
        assert await repo.get_rating("/music/A/B", "alice") is None

    @pytest.mark.parametrize("rating", [0, 6])
    async def test_out_of_range_rejected(self, session: AsyncSession, rating: int) -> None:
        with pytest.raises(ValidationException):
            await RatingRepository(session).set_rating("/music/A/B", "alice", rating)
