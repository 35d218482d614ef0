from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from snapforge.models.user import Base


class Setting(Base):
    """Process-wide key/value configuration (general, storage, images, smtp)."""

    __tablename__ = "Setting"
    Key = Column(String(64), primary_key=True)
    Value = Column(JSON, nullable=False)
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())
