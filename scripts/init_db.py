import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.noticeboard.constants import ROLE_SUPER_ADMIN
from app.noticeboard.models import Base, User
from app.noticeboard.security import hash_password, password_problems
from scripts._db_utils import default_database_url, script_session


def seed_only(*, database_url: str | None = None, create_tables: bool = False) -> User:
    """
    Seed the super_admin account in an idempotent way.
    Does NOT overwrite an existing user's password.
    """
    username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    password = os.environ.get("ADMIN_PASSWORD") or ""
    full_name = (os.environ.get("ADMIN_FULL_NAME") or "System Administrator").strip()

    db_url = database_url or default_database_url()

    with script_session(db_url) as s:
        if create_tables:
            Base.metadata.create_all(bind=s.get_bind())

        user = s.query(User).filter((User.username == username) | (User.email == email)).one_or_none()
        if user:
            if user.role != ROLE_SUPER_ADMIN:
                user.role = ROLE_SUPER_ADMIN
            print(f"Super admin already present: {user.username} <{user.email}>")
            return user

        problems = password_problems(password)
        if problems:
            raise SystemExit("ADMIN_PASSWORD rejected: " + "; ".join(problems))
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            role=ROLE_SUPER_ADMIN,
            is_active=True,
        )
        s.add(user)

    print("Initialized database (seed_only).")
    print(f"Super admin: {username} <{email}>")
    print("Password: (from ADMIN_PASSWORD)")
    return user


def main() -> None:
    # Local sqlite setups have no migration run; build the tables directly.
    seed_only(database_url=None, create_tables=default_database_url().startswith("sqlite"))


if __name__ == "__main__":
    main()
