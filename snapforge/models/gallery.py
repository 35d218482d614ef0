from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from snapforge.models.user import Base, utc_now_naive_utc


class Gallery(Base):
    __tablename__ = "Gallery"
    GalleryID = Column(String(32), primary_key=True)
    UserID = Column(
        Integer, ForeignKey("Users.UserID", ondelete="CASCADE"), nullable=False, index=True
    )
    Name = Column(String(255), nullable=False)
    # Capability token for the bearer API; rotated by overwrite
    AccessToken = Column(String(64), nullable=False, unique=True)

    # Processing overrides (NULL = use system defaults)
    ThumbSize = Column(Integer, nullable=True)
    ThumbQuality = Column(Integer, nullable=True)
    OutputFormat = Column(String(16), nullable=True)  # original|jpeg|webp|avif|png
    ResizeMethod = Column(String(16), nullable=True)  # lanczos3|lanczos2|mitchell|catrom|nearest
    JpegQuality = Column(Integer, nullable=True)
    WebpQuality = Column(Integer, nullable=True)
    AvifQuality = Column(Integer, nullable=True)
    PngCompressionLevel = Column(Integer, nullable=True)
    Effort = Column(Integer, nullable=True)
    ChromaSubsampling = Column(String(8), nullable=True)  # 4:2:0 | 4:2:2 | 4:4:4
    StripMetadata = Column(Boolean, nullable=True)
    AutoOrient = Column(Boolean, nullable=True)

    CreatedAt = Column(DateTime, nullable=False, default=utc_now_naive_utc)
    UpdatedAt = Column(
        DateTime, nullable=False, default=utc_now_naive_utc, onupdate=utc_now_naive_utc
    )

    owner = relationship("User")
    images = relationship("Image", back_populates="gallery", cascade="all, delete-orphan")
    collaborators = relationship(
        "GalleryCollaborator", back_populates="gallery", cascade="all, delete-orphan"
    )
    invitations = relationship(
        "GalleryInvitation", back_populates="gallery", cascade="all, delete-orphan"
    )
    tags = relationship("ImageTag", back_populates="gallery", cascade="all, delete-orphan")


class GalleryCollaborator(Base):
    __tablename__ = "GalleryCollaborator"
    __table_args__ = (UniqueConstraint("GalleryID", "UserID", name="uq_collaborator_gallery_user"),)
    CollaboratorID = Column(Integer, primary_key=True, autoincrement=True)
    GalleryID = Column(
        String(32), ForeignKey("Gallery.GalleryID", ondelete="CASCADE"), nullable=False
    )
    UserID = Column(Integer, ForeignKey("Users.UserID", ondelete="CASCADE"), nullable=False)
    Role = Column(String(16), nullable=False)  # viewer | editor | manager
    InvitedBy = Column(Integer, ForeignKey("Users.UserID"), nullable=True)
    InvitedAt = Column(DateTime, nullable=True)
    AcceptedAt = Column(DateTime, nullable=True)

    gallery = relationship("Gallery", back_populates="collaborators")
    user = relationship("User", foreign_keys=[UserID])


class GalleryInvitation(Base):
    __tablename__ = "GalleryInvitation"
    InvitationID = Column(String(32), primary_key=True)
    GalleryID = Column(
        String(32), ForeignKey("Gallery.GalleryID", ondelete="CASCADE"), nullable=False, index=True
    )
    # Target address; need not belong to a registered user
    Email = Column(String(255), nullable=False, index=True)
    Role = Column(String(16), nullable=False)
    InvitedBy = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    Token = Column(String(64), nullable=False, unique=True)
    ExpiresAt = Column(DateTime, nullable=False)
    CreatedAt = Column(DateTime, nullable=False, default=utc_now_naive_utc)

    gallery = relationship("Gallery", back_populates="invitations")
    inviter = relationship("User", foreign_keys=[InvitedBy])
