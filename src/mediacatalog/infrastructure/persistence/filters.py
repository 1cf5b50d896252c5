# Hey future me - this is the random song query engine!
#
# Every optional filter in RandomSearchCriteria becomes ONE FilterClause. A clause knows two
# things: the SQL condition for the database and a plain Python predicate over
# (MediaFile, RowAnnotations) with EXACTLY the same semantics. Absent filters produce no clause
# at all, and the final WHERE is the conjunction of whatever clauses exist. No string
# concatenation anywhere.
#
# NULL RULES for ranges (read twice, they are asymmetric on purpose):
#   lower only  -> value >= lower            (NULL excluded)
#   upper only  -> value IS NULL OR <= upper (NULL included: "never played" is under any max)
#   both        -> lower <= value <= upper   (NULL excluded)
"""Composable filter clauses for the random song query."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, Select, and_, func, or_, select
from sqlalchemy.orm import aliased

from mediacatalog.domain.entities import MediaFile, MediaType, MusicFolder
from mediacatalog.domain.value_objects import RandomSearchCriteria, RowAnnotations

from .models import MediaFileModel, StarredMediaFileModel, UserRatingModel

ValueGetter = Callable[[MediaFile, RowAnnotations], Any]


class FilterClause(ABC):
    """One independent, optional restriction of the random song query."""

    @abstractmethod
    def condition(self) -> ColumnElement[bool]:
        """SQL condition for this clause."""

    @abstractmethod
    def matches(self, file: MediaFile, annotations: RowAnnotations) -> bool:
        """Evaluate the clause in memory."""


@dataclass(frozen=True)
class EqualsClause(FilterClause):
    """Exact match on a column (genre, format)."""

    column: Any
    value: Any
    getter: ValueGetter

    def condition(self) -> ColumnElement[bool]:
        return self.column == self.value

    def matches(self, file: MediaFile, annotations: RowAnnotations) -> bool:
        return self.getter(file, annotations) == self.value


@dataclass(frozen=True)
class RangeClause(FilterClause):
    """Tri-state range with asymmetric null handling (see module header)."""

    column: Any
    lower: Any
    upper: Any
    getter: ValueGetter

    def __post_init__(self) -> None:
        if self.lower is None and self.upper is None:
            raise ValueError("RangeClause needs at least one bound")

    def condition(self) -> ColumnElement[bool]:
        if self.lower is not None and self.upper is not None:
            return and_(self.column >= self.lower, self.column <= self.upper)
        if self.lower is not None:
            return self.column >= self.lower
        return or_(self.column.is_(None), self.column <= self.upper)

    def matches(self, file: MediaFile, annotations: RowAnnotations) -> bool:
        value = self.getter(file, annotations)
        if self.lower is not None and self.upper is not None:
            return value is not None and self.lower <= value <= self.upper
        if self.lower is not None:
            return value is not None and value >= self.lower
        return value is None or value <= self.upper


@dataclass(frozen=True)
class StarClause(FilterClause):
    """Restrict to files the user has (or has not) starred."""

    username: str
    starred: bool

    def condition(self) -> ColumnElement[bool]:
        star_exists = (
            select(StarredMediaFileModel.id)
            .where(
                StarredMediaFileModel.media_file_id == MediaFileModel.id,
                StarredMediaFileModel.username == self.username,
            )
            .exists()
        )
        return star_exists if self.starred else ~star_exists

    def matches(self, file: MediaFile, annotations: RowAnnotations) -> bool:
        return annotations.starred == self.starred


# Listen up, the album rating is a correlated scalar subquery: song -> its ALBUM row (same album
# name + artist) -> that album path's rating for this user. If two ALBUM rows share the
# (album, artist) pair (same name in different folders), the one with the LOWEST id wins.
# No rating row -> NULL, which the RangeClause null rules then handle.
def album_rating_expression(username: str) -> Any:
    """Scalar SQL expression: the user's rating of the song's owning album."""
    media_album = aliased(MediaFileModel, name="media_album")
    album_path = (
        select(media_album.path)
        .where(
            media_album.type == MediaType.ALBUM.value,
            media_album.album_name == MediaFileModel.album_name,
            media_album.artist == MediaFileModel.artist,
        )
        .order_by(media_album.id)
        .limit(1)
        .correlate(MediaFileModel)
        .scalar_subquery()
    )
    return (
        select(UserRatingModel.rating)
        .where(
            UserRatingModel.path == album_path,
            UserRatingModel.username == username,
        )
        .limit(1)
        .scalar_subquery()
    )


def _range(
    column: Any, lower: Any, upper: Any, getter: ValueGetter
) -> RangeClause | None:
    if lower is None and upper is None:
        return None
    return RangeClause(column=column, lower=lower, upper=upper, getter=getter)


class RandomSongQueryBuilder:
    """Turn RandomSearchCriteria into a single random-sampling SELECT.

    Example:
        builder = RandomSongQueryBuilder(criteria, username="alice")
        if builder.is_empty_scope:
            return []
        rows = await session.execute(builder.statement())
    """

    def __init__(self, criteria: RandomSearchCriteria, username: str) -> None:
        self.criteria = criteria
        self.username = username
        self.clauses: list[FilterClause] = self._build_clauses()

    @property
    def is_empty_scope(self) -> bool:
        return not self.criteria.music_folders

    def _build_clauses(self) -> list[FilterClause]:
        c = self.criteria
        candidates: list[FilterClause | None] = []

        if c.genre is not None:
            candidates.append(
                EqualsClause(MediaFileModel.genre, c.genre, lambda f, _a: f.genre)
            )
        if c.format is not None:
            candidates.append(
                EqualsClause(MediaFileModel.format, c.format, lambda f, _a: f.format)
            )

        candidates.append(
            _range(MediaFileModel.year, c.from_year, c.to_year, lambda f, _a: f.year)
        )
        candidates.append(
            _range(
                MediaFileModel.last_played,
                c.min_last_played,
                c.max_last_played,
                lambda f, _a: f.last_played,
            )
        )
        if c.filters_by_album_rating:
            candidates.append(
                _range(
                    album_rating_expression(self.username),
                    c.min_album_rating,
                    c.max_album_rating,
                    lambda _f, a: a.album_rating,
                )
            )
        candidates.append(
            _range(
                MediaFileModel.play_count,
                c.min_play_count,
                c.max_play_count,
                lambda f, _a: f.play_count,
            )
        )

        # XOR gate: both flags set or both clear -> no star restriction at all
        if c.filters_by_star:
            candidates.append(
                StarClause(username=self.username, starred=c.show_starred_songs)
            )

        return [clause for clause in candidates if clause is not None]

    def base_conditions(self) -> list[ColumnElement[bool]]:
        """Conditions every random song query carries (present MUSIC in scope)."""
        return [
            MediaFileModel.present.is_(True),
            MediaFileModel.type == MediaType.MUSIC.value,
            MediaFileModel.folder.in_(
                MusicFolder.to_path_list(self.criteria.music_folders)
            ),
        ]

    def statement(self) -> Select[tuple[MediaFileModel]]:
        """Build the SELECT, ordered randomly on the database side."""
        return (
            select(MediaFileModel)
            .where(*self.base_conditions(), *(c.condition() for c in self.clauses))
            .order_by(func.random())
            .limit(self.criteria.count)
        )

    def matches(self, file: MediaFile, annotations: RowAnnotations | None = None) -> bool:
        """Evaluate the full criteria against one entity in memory."""
        annotations = annotations or RowAnnotations()
        folders = MusicFolder.to_path_list(self.criteria.music_folders)
        if not file.present or file.type != MediaType.MUSIC or file.folder not in folders:
            return False
        return all(clause.matches(file, annotations) for clause in self.clauses)
