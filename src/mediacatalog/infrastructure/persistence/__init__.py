"""Infrastructure persistence layer."""

from .batch_utils import (
    ChunkedResult,
    IncrementalCommitter,
    chunked,
    ensure_batch_total,
    ensure_unique_items,
    run_chunked,
)
from .database import Database
from .filters import (
    EqualsClause,
    FilterClause,
    RandomSongQueryBuilder,
    RangeClause,
    StarClause,
    album_rating_expression,
)
from .models import (
    Base,
    GenreModel,
    MediaFileModel,
    MusicFileInfoModel,
    StarredMediaFileModel,
    UserRatingModel,
    ensure_utc_aware,
)
from .repositories import (
    DEFAULT_PRESENT_CHUNK_SIZE,
    AnnotationRepository,
    GenreRepository,
    MediaFileRepository,
    RatingRepository,
)

__all__ = [
    "DEFAULT_PRESENT_CHUNK_SIZE",
    "AnnotationRepository",
    "Base",
    "ChunkedResult",
    "Database",
    "EqualsClause",
    "FilterClause",
    "GenreModel",
    "GenreRepository",
    "IncrementalCommitter",
    "MediaFileModel",
    "MediaFileRepository",
    "MusicFileInfoModel",
    "RandomSongQueryBuilder",
    "RangeClause",
    "RatingRepository",
    "StarClause",
    "StarredMediaFileModel",
    "UserRatingModel",
    "album_rating_expression",
    "chunked",
    "ensure_batch_total",
    "ensure_unique_items",
    "ensure_utc_aware",
    "run_chunked",
]
