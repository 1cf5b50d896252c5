"""create catalog tables

Revision ID: a1c4e2f0b7d3
Revises:
Create Date: 2026-01-01 00:00:00.000000

Hey future me - INITIAL CATALOG SCHEMA!

TABLES:
- media_file: one row per directory/album/track/video. path is the natural key (UNIQUE, that
  constraint is what lets ON CONFLICT (path) DO UPDATE settle racing first-inserts).
- genre: aggregate table, fully replaced on every recomputation.
- starred_media_file: (media_file_id, username) unique, own id for tie-breaking listings.
- user_rating: (username, path) -> rating 1..5.
- music_file_info: LEGACY, read-only. Only consulted on the first insert of a path.

Mapping from rows to entities is BY COLUMN NAME. Database.validate_schema() compares these
columns with the ORM models at startup.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c4e2f0b7d3"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all catalog tables."""
    op.create_table(
        "media_file",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("path", sa.String(1024), nullable=False),
        sa.Column("folder", sa.String(1024), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("format", sa.String(20), nullable=True),
        sa.Column("title", sa.String(512), nullable=True),
        sa.Column("album", sa.String(512), nullable=True),
        sa.Column("artist", sa.String(512), nullable=True),
        sa.Column("album_artist", sa.String(512), nullable=True),
        sa.Column("disc_number", sa.Integer(), nullable=True),
        sa.Column("track_number", sa.Integer(), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("genre", sa.String(255), nullable=True),
        sa.Column("bit_rate", sa.Integer(), nullable=True),
        sa.Column(
            "variable_bit_rate", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("cover_art_path", sa.String(1024), nullable=True),
        sa.Column("parent_path", sa.String(1024), nullable=True),
        sa.Column("play_count", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("last_played", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False),
        sa.Column("changed", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_scanned", sa.DateTime(timezone=True), nullable=False),
        sa.Column("children_last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("present", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mb_release_id", sa.String(36), nullable=True),
        sa.Column("mb_recording_id", sa.String(36), nullable=True),
        sa.UniqueConstraint("path", name="uq_media_file_path"),
    )
    op.create_index(
        "ix_media_file_folder_type_present", "media_file", ["folder", "type", "present"]
    )
    op.create_index("ix_media_file_parent_path", "media_file", ["parent_path"])
    op.create_index(
        "ix_media_file_album_artist_album", "media_file", ["album_artist", "album"]
    )
    op.create_index("ix_media_file_artist_album", "media_file", ["artist", "album"])
    op.create_index("ix_media_file_last_scanned", "media_file", ["last_scanned"])
    op.create_index("ix_media_file_genre", "media_file", ["genre"])

    op.create_table(
        "genre",
        sa.Column("name", sa.String(255), primary_key=True),
        sa.Column("song_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("album_count", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "starred_media_file",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "media_file_id",
            sa.Integer(),
            sa.ForeignKey("media_file.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "media_file_id", "username", name="uq_starred_media_file_file_user"
        ),
    )
    op.create_index(
        "ix_starred_media_file_username", "starred_media_file", ["username"]
    )

    op.create_table(
        "user_rating",
        sa.Column("username", sa.String(255), primary_key=True),
        sa.Column("path", sa.String(1024), primary_key=True),
        sa.Column("rating", sa.Integer(), nullable=False),
    )

    op.create_table(
        "music_file_info",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("path", sa.String(1024), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("play_count", sa.Integer(), nullable=True),
        sa.Column("last_played", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("path", name="uq_music_file_info_path"),
    )


def downgrade() -> None:
    """Drop all catalog tables."""
    op.drop_table("music_file_info")
    op.drop_table("user_rating")
    op.drop_index("ix_starred_media_file_username", table_name="starred_media_file")
    op.drop_table("starred_media_file")
    op.drop_table("genre")
    op.drop_index("ix_media_file_genre", table_name="media_file")
    op.drop_index("ix_media_file_last_scanned", table_name="media_file")
    op.drop_index("ix_media_file_artist_album", table_name="media_file")
    op.drop_index("ix_media_file_album_artist_album", table_name="media_file")
    op.drop_index("ix_media_file_parent_path", table_name="media_file")
    op.drop_index("ix_media_file_folder_type_present", table_name="media_file")
    op.drop_table("media_file")
