from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from snapforge.models.user import Base


class AppErrorLog(Base):
    """One row per request that ended in an unexpected server error."""

    __tablename__ = "AppErrorLog"
    __table_args__ = (Index("ix_AppErrorLog_OccurredAt", "OccurredAt"),)

    ErrorID = Column(Integer, primary_key=True, autoincrement=True)
    OccurredAt = Column(DateTime, server_default=func.now(), nullable=False)
    RequestID = Column(String(64))
    Method = Column(String(16))
    Path = Column(String(500))
    StatusCode = Column(Integer)
    UserID = Column(Integer)
    ClientIP = Column(String(45))
    UserAgent = Column(String(255))
    ExceptionType = Column(String(128))
    Message = Column(Text)
    StackTrace = Column(Text)
