from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from snapforge.models.user import Base, utc_now_naive_utc


class Image(Base):
    __tablename__ = "Image"
    # Also the blob file stem: {GalleryID}/{ImageID}.{ext}
    ImageID = Column(String(32), primary_key=True)
    GalleryID = Column(
        String(32), ForeignKey("Gallery.GalleryID", ondelete="CASCADE"), nullable=False, index=True
    )
    FileName = Column(String(255), nullable=False)
    OriginalFileName = Column(String(255), nullable=False)
    MimeType = Column(String(64), nullable=False)
    SizeBytes = Column(Integer, nullable=False)
    Width = Column(Integer, nullable=False)
    Height = Column(Integer, nullable=False)
    StoragePath = Column(String(512), nullable=False)
    Latitude = Column(Float, nullable=True)
    Longitude = Column(Float, nullable=True)
    Altitude = Column(Float, nullable=True)
    LocationName = Column(String(255), nullable=True)
    TakenAt = Column(DateTime, nullable=True)
    CreatedAt = Column(DateTime, nullable=False, default=utc_now_naive_utc, index=True)

    gallery = relationship("Gallery", back_populates="images")
    tag_assignments = relationship(
        "ImageTagAssignment", back_populates="image", cascade="all, delete-orphan"
    )


class ImageTag(Base):
    __tablename__ = "ImageTag"
    TagID = Column(Integer, primary_key=True, autoincrement=True)
    GalleryID = Column(
        String(32), ForeignKey("Gallery.GalleryID", ondelete="CASCADE"), nullable=False, index=True
    )
    Name = Column(String(64), nullable=False)
    Color = Column(String(16), nullable=True)
    CreatedAt = Column(DateTime, nullable=False, default=utc_now_naive_utc)

    gallery = relationship("Gallery", back_populates="tags")
    assignments = relationship(
        "ImageTagAssignment", back_populates="tag", cascade="all, delete-orphan"
    )


class ImageTagAssignment(Base):
    __tablename__ = "ImageTagAssignment"
    ImageID = Column(
        String(32), ForeignKey("Image.ImageID", ondelete="CASCADE"), primary_key=True
    )
    TagID = Column(Integer, ForeignKey("ImageTag.TagID", ondelete="CASCADE"), primary_key=True)

    image = relationship("Image", back_populates="tag_assignments")
    tag = relationship("ImageTag", back_populates="assignments")
