"""Opaque bearer-token sessions.

The client holds a random token; the database only ever sees its SHA-256
digest, which doubles as the session primary key. Sessions slide: once less
than half of the lifetime remains, validation pushes the expiry out again.
"""

from __future__ import annotations

import base64
import hashlib
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from snapforge.core.settings import settings
from snapforge.models.user import User, UserSession, utc_now_naive_utc

TOKEN_BYTES = 32
SESSION_DURATION = timedelta(days=settings.SESSION_TTL_DAYS)


@dataclass(frozen=True)
class SessionUser:
    """User as seen by request handlers; never carries the password hash."""

    id: int
    email: str
    role: str
    max_galleries: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_user(cls, user: User) -> "SessionUser":
        return cls(
            id=user.UserID,
            email=user.Email,
            role=user.Role,
            max_galleries=user.MaxGalleries,
            created_at=user.DateCreated,
            updated_at=user.LastUpdated,
        )


def generate_session_token() -> str:
    return base64.urlsafe_b64encode(os.urandom(TOKEN_BYTES)).decode("ascii")


def hash_session_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(db: Session, user_id: int) -> Tuple[str, UserSession]:
    token = generate_session_token()
    now = utc_now_naive_utc()
    session = UserSession(
        SessionID=hash_session_token(token),
        UserID=user_id,
        CreatedAt=now,
        ExpiresAt=now + SESSION_DURATION,
    )
    db.add(session)
    db.commit()
    return token, session


def validate_session(
    db: Session, token: str
) -> Tuple[Optional[UserSession], Optional[SessionUser]]:
    if not token:
        return None, None
    session_id = hash_session_token(token)
    row = (
        db.query(UserSession, User)
        .join(User, User.UserID == UserSession.UserID)
        .filter(UserSession.SessionID == session_id)
        .first()
    )
    if row is None:
        return None, None
    session, user = row

    now = utc_now_naive_utc()
    if now >= session.ExpiresAt:
        db.query(UserSession).filter(UserSession.SessionID == session_id).delete(
            synchronize_session=False
        )
        db.commit()
        return None, None

    if now >= session.ExpiresAt - SESSION_DURATION / 2:
        session.ExpiresAt = now + SESSION_DURATION
        db.commit()

    return session, SessionUser.from_user(user)


def invalidate_session(db: Session, token: str) -> None:
    db.query(UserSession).filter(UserSession.SessionID == hash_session_token(token)).delete(
        synchronize_session=False
    )
    db.commit()


def invalidate_all_user_sessions(db: Session, user_id: int) -> None:
    db.query(UserSession).filter(UserSession.UserID == user_id).delete(synchronize_session=False)
    db.commit()


def cleanup_expired_sessions(db: Session) -> int:
    """Delete every session past its expiry; returns the number removed."""
    removed = (
        db.query(UserSession)
        .filter(UserSession.ExpiresAt < utc_now_naive_utc())
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(removed or 0)
