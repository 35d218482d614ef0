"""Delete expired sessions once; suitable for cron when the in-process sweep is disabled."""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db import create_db_engine, create_session_factory  # noqa: E402
from snapforge.core.logging_utils import configure_logging  # noqa: E402
from snapforge.core.settings import settings  # noqa: E402
from snapforge.jobs.cleanup_sessions_job import run_session_cleanup_once  # noqa: E402


def main():
    configure_logging(settings)
    engine = create_db_engine(settings.DATABASE_URL)
    try:
        removed = run_session_cleanup_once(create_session_factory(engine))
    finally:
        engine.dispose()
    print(f"Removed {removed} expired session(s)")


if __name__ == "__main__":
    main()
