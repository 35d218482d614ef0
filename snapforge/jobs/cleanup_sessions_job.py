import asyncio
import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from snapforge.services import rate_limit
from snapforge.services.sessions import cleanup_expired_sessions

logger = logging.getLogger(__name__)

# Login counters are only consulted for the current window
RATE_LIMIT_RETENTION = timedelta(days=1)


def run_session_cleanup(db: Session) -> int:
    """Delete expired sessions and stale rate-limit counters.

    Returns the number of sessions removed.
    """
    removed = cleanup_expired_sessions(db)
    counters = rate_limit.prune(db, RATE_LIMIT_RETENTION)
    if removed or counters:
        logger.info("sessions.cleanup", extra={"removed": removed, "counters_removed": counters})
    return removed


def run_session_cleanup_once(session_factory: sessionmaker) -> int:
    db = session_factory()
    try:
        return run_session_cleanup(db)
    finally:
        db.close()


async def session_cleanup_loop(session_factory: sessionmaker, interval_seconds: float) -> None:
    """Sweep every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(run_session_cleanup_once, session_factory)
        except SQLAlchemyError:
            logger.exception("Session cleanup failed")
