"""Fixed-window attempt counters kept in the database.

A key's window number is ``epoch_seconds // window_seconds``; each
(key, window) pair is one ``RateLimitCounter`` row. Rows are shared by every
app instance pointing at the same database.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from time import time
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snapforge.models.rate_limit import RateLimitCounter
from snapforge.models.user import utc_now_naive_utc

logger = logging.getLogger(__name__)


def _window(window_seconds: int) -> int:
    return int(time()) // max(1, window_seconds)


def _bucket(db: Session, key: str, window: int, lock: bool = False) -> Optional[RateLimitCounter]:
    query = db.query(RateLimitCounter)
    if lock:
        query = query.with_for_update()
    return query.filter(RateLimitCounter.Key == key, RateLimitCounter.Window == window).first()


def allow(db: Session, key: str, limit: int, window_seconds: int) -> bool:
    """Count one attempt for ``key``; False once ``limit`` is exceeded.

    A counter that cannot be written lets the attempt through.
    """
    window = _window(window_seconds)
    try:
        bucket = _bucket(db, key, window, lock=True)
        if bucket is None:
            bucket = RateLimitCounter(Key=key, Window=window, Count=0)
            db.add(bucket)
        bucket.Count = int(bucket.Count or 0) + 1
        count = bucket.Count
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Rate limit storage unavailable; allowing %s", key, exc_info=True)
        return True
    return count <= int(limit)


def is_limited(db: Session, key: str, limit: int, window_seconds: int) -> bool:
    """Whether ``key`` has already used up its attempts in the current window."""
    bucket = _bucket(db, key, _window(window_seconds))
    return bucket is not None and int(bucket.Count or 0) >= int(limit)


def reset(db: Session, key: str) -> None:
    db.query(RateLimitCounter).filter(RateLimitCounter.Key == key).delete(
        synchronize_session=False
    )
    db.commit()


def prune(db: Session, older_than: timedelta) -> int:
    """Drop counters untouched for ``older_than``; returns the number removed."""
    cutoff = utc_now_naive_utc() - older_than
    removed = (
        db.query(RateLimitCounter)
        .filter(RateLimitCounter.UpdatedAt < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(removed or 0)
