import os
import sys
from pathlib import Path

from sqlalchemy import select
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.blog.constants import PERMISSIONS, ROLE_NAMES, ROLE_PERMISSIONS  # noqa: E402
from app.blog.models import Permission, Role, User  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed(s) -> None:
    """
    Seed permissions, roles and their grants. Idempotent; never removes grants.
    """
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS.items():
        p = s.scalars(select(Permission).where(Permission.key == key)).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    for role_key, perm_keys in ROLE_PERMISSIONS.items():
        role = s.scalars(select(Role).where(Role.key == role_key)).one_or_none()
        if not role:
            role = Role(key=role_key, name=ROLE_NAMES[role_key])
            s.add(role)
        for pk in perm_keys:
            if perms[pk] not in role.permissions:
                role.permissions.append(perms[pk])
    s.flush()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "contact@erenailab.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///blog.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        seed(s)
        role_admin = s.scalars(select(Role).where(Role.key == "admin")).one()

        user = s.scalars(select(User).where(User.email == admin_email)).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                name="Admin",
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
