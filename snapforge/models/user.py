from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def utc_now_naive_utc():
    """Return current UTC time as a naive datetime (tzinfo removed).

    All timestamp columns store naive UTC values.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "Users"
    UserID = Column(Integer, primary_key=True, autoincrement=True)
    # Stored trimmed and lower-cased
    Email = Column(String(255), nullable=False, unique=True)
    HashedPassword = Column(String(255), nullable=False)
    Role = Column(String(16), nullable=False, default="user")  # 'admin' | 'user'
    MaxGalleries = Column(Integer, nullable=False, default=10)
    DateCreated = Column(DateTime, server_default=func.now())
    LastUpdated = Column(DateTime, server_default=func.now(), onupdate=func.now())

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.Role == "admin"


class UserSession(Base):
    __tablename__ = "UserSession"
    # Hex SHA-256 of the bearer token; the token itself is never stored
    SessionID = Column(String(64), primary_key=True)
    UserID = Column(
        Integer, ForeignKey("Users.UserID", ondelete="CASCADE"), nullable=False, index=True
    )
    CreatedAt = Column(DateTime, nullable=False, default=utc_now_naive_utc)
    ExpiresAt = Column(DateTime, nullable=False, index=True)

    user = relationship("User", back_populates="sessions")
