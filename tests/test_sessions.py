from datetime import timedelta

from snapforge.models import UserSession
from snapforge.models.user import utc_now_naive_utc
from snapforge.services.sessions import (
    SESSION_DURATION,
    cleanup_expired_sessions,
    create_session,
    hash_session_token,
    invalidate_all_user_sessions,
    invalidate_session,
    validate_session,
)


def test_token_is_never_stored(db_session, owner):
    token, session = create_session(db_session, owner.UserID)
    assert session.SessionID == hash_session_token(token)
    assert db_session.query(UserSession).filter(UserSession.SessionID == token).first() is None


def test_validate_returns_user_without_hash(db_session, owner):
    token, _ = create_session(db_session, owner.UserID)
    session, user = validate_session(db_session, token)
    assert session is not None
    assert user.id == owner.UserID
    assert user.email == "owner@example.com"
    assert not hasattr(user, "HashedPassword")


def test_unknown_token(db_session, owner):
    assert validate_session(db_session, "nope") == (None, None)
    assert validate_session(db_session, "") == (None, None)


def test_expired_session_is_deleted(db_session, owner):
    token, session = create_session(db_session, owner.UserID)
    session.ExpiresAt = utc_now_naive_utc() - timedelta(seconds=1)
    db_session.commit()
    assert validate_session(db_session, token) == (None, None)
    remaining = db_session.query(UserSession).filter(UserSession.SessionID == hash_session_token(token))
    assert remaining.count() == 0


def test_sliding_expiry_extends_late_sessions(db_session, owner):
    token, session = create_session(db_session, owner.UserID)
    session.ExpiresAt = utc_now_naive_utc() + timedelta(days=10)
    db_session.commit()
    refreshed, _ = validate_session(db_session, token)
    assert refreshed.ExpiresAt > utc_now_naive_utc() + SESSION_DURATION - timedelta(minutes=1)


def test_fresh_session_is_not_extended(db_session, owner):
    token, session = create_session(db_session, owner.UserID)
    before = session.ExpiresAt
    refreshed, _ = validate_session(db_session, token)
    assert refreshed.ExpiresAt == before


def test_invalidate_is_idempotent(db_session, owner):
    token, _ = create_session(db_session, owner.UserID)
    invalidate_session(db_session, token)
    invalidate_session(db_session, token)
    assert validate_session(db_session, token) == (None, None)


def test_invalidate_all_and_cleanup(db_session, owner, make_user):
    other = make_user("other@example.com")
    t1, _ = create_session(db_session, owner.UserID)
    t2, _ = create_session(db_session, owner.UserID)
    t3, s3 = create_session(db_session, other.UserID)
    invalidate_all_user_sessions(db_session, owner.UserID)
    assert validate_session(db_session, t1) == (None, None)
    assert validate_session(db_session, t2) == (None, None)

    s3.ExpiresAt = utc_now_naive_utc() - timedelta(days=1)
    db_session.commit()
    assert cleanup_expired_sessions(db_session) == 1
    assert cleanup_expired_sessions(db_session) == 0
