from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from snapforge.core.settings import settings
from snapforge.models.gallery import GalleryCollaborator
from snapforge.models.user import User, utc_now_naive_utc
from snapforge.services import rate_limit
from snapforge.services.collaboration import accept_invitation, get_invitation_by_token
from snapforge.services.email_utils import normalize_email, validate_email
from snapforge.services.errors import (
    AuthenticationError,
    ConflictError,
    PermissionDeniedError,
    RateLimitedError,
    ValidationError,
)
from snapforge.services.passwords import hash_password, verify_password
from snapforge.services.sessions import (
    SessionUser,
    create_session,
    invalidate_all_user_sessions,
    invalidate_session,
)
from snapforge.services.settings_store import get_general_settings

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 1024


@dataclass(frozen=True)
class AuthResult:
    user: SessionUser
    token: str
    # Set when registration consumed an invitation
    collaborator: Optional[GalleryCollaborator] = None


def _check_password(password: Any) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError("Password is too long")
    return password


def has_any_users(db: Session) -> bool:
    return (db.query(func.count(User.UserID)).scalar() or 0) > 0


def register(
    db: Session, email: Any, password: Any, invite_token: Optional[str] = None
) -> AuthResult:
    """Create an account and its first session.

    Allowed when no user exists yet (that user becomes admin), when open
    registration is enabled, or when ``invite_token`` is a live invitation for
    this address. In the last case the new user joins the gallery immediately.
    """
    email = validate_email(normalize_email(email))
    password = _check_password(password)

    first_user = not has_any_users(db)
    general = get_general_settings(db)
    invitation = get_invitation_by_token(db, invite_token) if invite_token else None
    invited = invitation is not None and invitation.Email.lower() == email
    if not (first_user or general.allow_registration or invited):
        raise PermissionDeniedError("Registration is disabled")

    if db.query(User).filter(User.Email == email).first() is not None:
        raise ConflictError("Email address already registered")

    user = User(
        Email=email,
        HashedPassword=hash_password(password),
        Role="admin" if first_user else "user",
        MaxGalleries=general.default_max_galleries,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email address already registered") from None
    db.refresh(user)
    audit.info("auth.register", extra={"user_id": user.UserID, "role": user.Role})

    collaborator = None
    if invited:
        collaborator = accept_invitation(db, invite_token, user.UserID)

    token, _ = create_session(db, user.UserID)
    return AuthResult(user=SessionUser.from_user(user), token=token, collaborator=collaborator)


def _login_key(email: str, client_ip: Optional[str]) -> str:
    return f"login:{client_ip or 'unknown'}:{email}"


def login(db: Session, email: Any, password: Any, client_ip: Optional[str] = None) -> AuthResult:
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationError("Email and password required")
    email = normalize_email(email)
    key = _login_key(email, client_ip)
    limit = settings.RATE_LIMIT_LOGIN_ATTEMPTS
    window = settings.RATE_LIMIT_LOGIN_WINDOW_SECONDS
    if rate_limit.is_limited(db, key, limit, window):
        audit.warning("auth.login.rate_limited", extra={"email": email, "ip": client_ip})
        raise RateLimitedError()

    user = db.query(User).filter(User.Email == email).first()
    if user is None or not verify_password(password, user.HashedPassword):
        rate_limit.allow(db, key, limit, window)
        audit.warning("auth.login.failed", extra={"email": email, "ip": client_ip})
        raise AuthenticationError("Invalid credentials")

    rate_limit.reset(db, key)
    token, _ = create_session(db, user.UserID)
    audit.info("auth.login.success", extra={"user_id": user.UserID, "ip": client_ip})
    return AuthResult(user=SessionUser.from_user(user), token=token)


def logout(db: Session, token: Optional[str]) -> None:
    if token:
        invalidate_session(db, token)


def change_password(db: Session, user_id: int, current_password: Any, new_password: Any) -> str:
    """Rotate the password, drop every session of the user and return a fresh token."""
    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError()
    if not isinstance(current_password, str) or not verify_password(
        current_password, user.HashedPassword
    ):
        raise ValidationError("Current password is incorrect")
    new_password = _check_password(new_password)

    user.HashedPassword = hash_password(new_password)
    user.LastUpdated = utc_now_naive_utc()
    db.commit()
    invalidate_all_user_sessions(db, user_id)
    token, _ = create_session(db, user_id)
    audit.info("auth.password_changed", extra={"user_id": user_id})
    return token


def user_to_dict(user: SessionUser) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "maxGalleries": user.max_galleries,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }
