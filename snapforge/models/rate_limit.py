from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from snapforge.models.user import Base


class RateLimitCounter(Base):
    """Attempts made under ``Key`` during fixed window number ``Window``."""

    __tablename__ = "RateLimitCounter"
    __table_args__ = (Index("ix_RateLimitCounter_UpdatedAt", "UpdatedAt"),)

    Key = Column(String(255), primary_key=True)
    Window = Column(Integer, primary_key=True)
    Count = Column(Integer, nullable=False, default=0)
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())
