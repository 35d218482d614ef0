import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db import create_db_engine, create_session_factory  # noqa: E402
from snapforge.core.settings import settings  # noqa: E402
from snapforge.models import Base, User  # noqa: E402
from snapforge.services.email_utils import normalize_email, validate_email  # noqa: E402
from snapforge.services.passwords import hash_password  # noqa: E402
from snapforge.services.settings_store import get_general_settings  # noqa: E402


def upsert_user(email: str, password: str | None, make_admin: bool, max_galleries: int | None) -> tuple[bool, int]:
    engine = create_db_engine(settings.DATABASE_URL)
    if settings.DB_CREATE_ALL:
        Base.metadata.create_all(bind=engine)
    s = create_session_factory(engine)()
    try:
        email = validate_email(normalize_email(email))
        user = s.query(User).filter(User.Email == email).first()
        created = False
        if not user:
            if not password:
                raise ValueError("Password required to create a new user")
            user = User(
                Email=email,
                HashedPassword=hash_password(password),
                Role="user",
                MaxGalleries=get_general_settings(s).default_max_galleries,
            )
            s.add(user)
            created = True
        elif password:
            user.HashedPassword = hash_password(password)
        if make_admin:
            user.Role = "admin"
        if max_galleries is not None:
            user.MaxGalleries = max_galleries
        s.commit()
        s.refresh(user)
        return created, int(user.UserID)
    finally:
        s.close()
        engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Create or update a user (optionally admin).")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", default=None)
    parser.add_argument("--admin", action="store_true", help="Grant admin role")
    parser.add_argument("--max-galleries", type=int, default=None)
    args = parser.parse_args()

    created, user_id = upsert_user(
        email=args.email,
        password=args.password,
        make_admin=bool(args.admin),
        max_galleries=args.max_galleries,
    )
    status = "created" if created else "updated"
    print(f"User {status}: id={user_id} email={args.email} admin={args.admin}")


if __name__ == "__main__":
    main()
