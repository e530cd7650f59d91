"""Initial Bird Feed schema

Revision ID: 001
Revises: None
Create Date: 2026-01-10 00:00:00.000000+00:00

What:  Creates users, app_settings, species, photos, the three Haikubox
       tables and bookmarks.
How:   Mirrors birdfeed/models/*. Every user-owned table cascades on user
       delete; detections and activity rows keep their species name when
       the species is deleted (species_id SET NULL).

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _now():
    return sa.text("CURRENT_TIMESTAMP")


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        sa.String(255),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), nullable=False, comment="Identity provider user id"),
        sa.Column("email", sa.String(320), nullable=False, server_default=sa.text("''")),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column(
            "username",
            sa.String(30),
            nullable=True,
            comment="Lowercase public handle; NULL until the user picks one",
        ),
        sa.Column("is_public_gallery_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "is_directory_listed",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="Whether the public gallery appears in Discover",
        ),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(2), nullable=True, comment="Two-letter US state code"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "app_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "key", name="uq_app_settings_user_key"),
    )

    op.create_table(
        "species",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column("common_name", sa.String(255), nullable=False),
        sa.Column("scientific_name", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "rarity",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'common'"),
            comment="common, uncommon, rare",
        ),
        sa.Column("cover_photo_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_species_user_id", "species", ["user_id"])

    op.create_table(
        "photos",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column(
            "species_id",
            sa.Integer(),
            sa.ForeignKey("species.id", ondelete="CASCADE"),
            nullable=True,
            comment="NULL = unassigned (inbox)",
        ),
        sa.Column(
            "filename",
            sa.String(255),
            nullable=False,
            comment="Relative path from storage root to the stored image",
        ),
        sa.Column("upload_date", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.Column("original_date_taken", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "date_taken_source",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'exif'"),
            comment="exif or manual",
        ),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_photos_user_species", "photos", ["user_id", "species_id"])
    op.create_index("idx_photos_upload_date", "photos", ["upload_date"])

    op.create_table(
        "haikubox_detections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column("species_common_name", sa.String(255), nullable=False),
        sa.Column(
            "species_id",
            sa.Integer(),
            sa.ForeignKey("species.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("yearly_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_heard_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("data_year", sa.Integer(), nullable=False),
        sa.Column("synced_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id",
            "species_common_name",
            "data_year",
            name="uq_haikubox_detection_user_name_year",
        ),
    )

    op.create_table(
        "haikubox_sync_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column("sync_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("synced_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_haikubox_sync_log_user_synced", "haikubox_sync_log", ["user_id", "synced_at"])

    op.create_table(
        "haikubox_activity_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column("species_common_name", sa.String(255), nullable=False),
        sa.Column(
            "species_id",
            sa.Integer(),
            sa.ForeignKey("species.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("detected_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("hour_of_day", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id",
            "species_common_name",
            "detected_at",
            name="uq_haikubox_activity_user_name_time",
        ),
    )
    op.create_index(
        "idx_haikubox_activity_user_detected",
        "haikubox_activity_log",
        ["user_id", "detected_at"],
    )

    op.create_table(
        "bookmarks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column(
            "bookmarked_user_id",
            sa.String(255),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "bookmarked_user_id", name="uq_bookmarks_pair"),
    )


def downgrade() -> None:
    op.drop_table("bookmarks")
    op.drop_index("idx_haikubox_activity_user_detected", table_name="haikubox_activity_log")
    op.drop_table("haikubox_activity_log")
    op.drop_index("idx_haikubox_sync_log_user_synced", table_name="haikubox_sync_log")
    op.drop_table("haikubox_sync_log")
    op.drop_table("haikubox_detections")
    op.drop_index("idx_photos_upload_date", table_name="photos")
    op.drop_index("idx_photos_user_species", table_name="photos")
    op.drop_table("photos")
    op.drop_index("idx_species_user_id", table_name="species")
    op.drop_table("species")
    op.drop_table("app_settings")
    op.drop_table("users")
