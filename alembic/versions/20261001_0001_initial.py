"""initial schema

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "Users",
        sa.Column("UserID", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("Email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("HashedPassword", sa.String(length=255), nullable=False),
        sa.Column("Role", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column("MaxGalleries", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("DateCreated", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("LastUpdated", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "UserSession",
        sa.Column("SessionID", sa.String(length=64), primary_key=True),
        sa.Column(
            "UserID",
            sa.Integer(),
            sa.ForeignKey("Users.UserID", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False),
        sa.Column("ExpiresAt", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_UserSession_UserID", "UserSession", ["UserID"])
    op.create_index("ix_UserSession_ExpiresAt", "UserSession", ["ExpiresAt"])

    op.create_table(
        "Gallery",
        sa.Column("GalleryID", sa.String(length=32), primary_key=True),
        sa.Column(
            "UserID",
            sa.Integer(),
            sa.ForeignKey("Users.UserID", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("Name", sa.String(length=255), nullable=False),
        sa.Column("AccessToken", sa.String(length=64), nullable=False, unique=True),
        sa.Column("ThumbSize", sa.Integer(), nullable=True),
        sa.Column("ThumbQuality", sa.Integer(), nullable=True),
        sa.Column("OutputFormat", sa.String(length=16), nullable=True),
        sa.Column("ResizeMethod", sa.String(length=16), nullable=True),
        sa.Column("JpegQuality", sa.Integer(), nullable=True),
        sa.Column("WebpQuality", sa.Integer(), nullable=True),
        sa.Column("AvifQuality", sa.Integer(), nullable=True),
        sa.Column("PngCompressionLevel", sa.Integer(), nullable=True),
        sa.Column("Effort", sa.Integer(), nullable=True),
        sa.Column("ChromaSubsampling", sa.String(length=8), nullable=True),
        sa.Column("StripMetadata", sa.Boolean(), nullable=True),
        sa.Column("AutoOrient", sa.Boolean(), nullable=True),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False),
        sa.Column("UpdatedAt", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_Gallery_UserID", "Gallery", ["UserID"])

    op.create_table(
        "GalleryCollaborator",
        sa.Column("CollaboratorID", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "GalleryID",
            sa.String(length=32),
            sa.ForeignKey("Gallery.GalleryID", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "UserID",
            sa.Integer(),
            sa.ForeignKey("Users.UserID", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("Role", sa.String(length=16), nullable=False),
        sa.Column("InvitedBy", sa.Integer(), sa.ForeignKey("Users.UserID"), nullable=True),
        sa.Column("InvitedAt", sa.DateTime(), nullable=True),
        sa.Column("AcceptedAt", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("GalleryID", "UserID", name="uq_collaborator_gallery_user"),
    )
    op.create_table(
        "GalleryInvitation",
        sa.Column("InvitationID", sa.String(length=32), primary_key=True),
        sa.Column(
            "GalleryID",
            sa.String(length=32),
            sa.ForeignKey("Gallery.GalleryID", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("Email", sa.String(length=255), nullable=False),
        sa.Column("Role", sa.String(length=16), nullable=False),
        sa.Column("InvitedBy", sa.Integer(), sa.ForeignKey("Users.UserID"), nullable=False),
        sa.Column("Token", sa.String(length=64), nullable=False, unique=True),
        sa.Column("ExpiresAt", sa.DateTime(), nullable=False),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_GalleryInvitation_GalleryID", "GalleryInvitation", ["GalleryID"])
    op.create_index("ix_GalleryInvitation_Email", "GalleryInvitation", ["Email"])

    op.create_table(
        "Image",
        sa.Column("ImageID", sa.String(length=32), primary_key=True),
        sa.Column(
            "GalleryID",
            sa.String(length=32),
            sa.ForeignKey("Gallery.GalleryID", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("FileName", sa.String(length=255), nullable=False),
        sa.Column("OriginalFileName", sa.String(length=255), nullable=False),
        sa.Column("MimeType", sa.String(length=64), nullable=False),
        sa.Column("SizeBytes", sa.Integer(), nullable=False),
        sa.Column("Width", sa.Integer(), nullable=False),
        sa.Column("Height", sa.Integer(), nullable=False),
        sa.Column("StoragePath", sa.String(length=512), nullable=False),
        sa.Column("Latitude", sa.Float(), nullable=True),
        sa.Column("Longitude", sa.Float(), nullable=True),
        sa.Column("Altitude", sa.Float(), nullable=True),
        sa.Column("LocationName", sa.String(length=255), nullable=True),
        sa.Column("TakenAt", sa.DateTime(), nullable=True),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_Image_GalleryID", "Image", ["GalleryID"])
    op.create_index("ix_Image_CreatedAt", "Image", ["CreatedAt"])

    op.create_table(
        "ImageTag",
        sa.Column("TagID", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "GalleryID",
            sa.String(length=32),
            sa.ForeignKey("Gallery.GalleryID", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("Name", sa.String(length=64), nullable=False),
        sa.Column("Color", sa.String(length=16), nullable=True),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ImageTag_GalleryID", "ImageTag", ["GalleryID"])
    op.create_table(
        "ImageTagAssignment",
        sa.Column(
            "ImageID",
            sa.String(length=32),
            sa.ForeignKey("Image.ImageID", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "TagID",
            sa.Integer(),
            sa.ForeignKey("ImageTag.TagID", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "Setting",
        sa.Column("Key", sa.String(length=64), primary_key=True),
        sa.Column("Value", sa.JSON(), nullable=False),
        sa.Column("UpdatedAt", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "RateLimitCounter",
        sa.Column("Key", sa.String(length=255), primary_key=True, nullable=False),
        sa.Column("Window", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("Count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("UpdatedAt", sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )
    op.create_index("ix_RateLimitCounter_UpdatedAt", "RateLimitCounter", ["UpdatedAt"])
    op.create_table(
        "AppErrorLog",
        sa.Column("ErrorID", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("OccurredAt", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("RequestID", sa.String(length=64), nullable=True),
        sa.Column("Method", sa.String(length=16), nullable=True),
        sa.Column("Path", sa.String(length=500), nullable=True),
        sa.Column("StatusCode", sa.Integer(), nullable=True),
        sa.Column("UserID", sa.Integer(), nullable=True),
        sa.Column("ClientIP", sa.String(length=45), nullable=True),
        sa.Column("UserAgent", sa.String(length=255), nullable=True),
        sa.Column("ExceptionType", sa.String(length=128), nullable=True),
        sa.Column("Message", sa.Text(), nullable=True),
        sa.Column("StackTrace", sa.Text(), nullable=True),
    )
    op.create_index("ix_AppErrorLog_OccurredAt", "AppErrorLog", ["OccurredAt"])


def downgrade() -> None:
    op.drop_table("AppErrorLog")
    op.drop_table("RateLimitCounter")
    op.drop_table("Setting")
    op.drop_table("ImageTagAssignment")
    op.drop_table("ImageTag")
    op.drop_table("Image")
    op.drop_table("GalleryInvitation")
    op.drop_table("GalleryCollaborator")
    op.drop_table("Gallery")
    op.drop_table("UserSession")
    op.drop_table("Users")
