"""Create the data files and a first admin. Run once on startup.

SECURITY: Auto-generates a random default password (not hardcoded).
The admin must change it after first login.
"""
import secrets
from typing import Optional

from pharmacy.core.security import hash_password
from pharmacy.db.session import DataSession
from pharmacy.models import Admin

DEFAULT_ADMIN_USERNAME = "admin"


def init_db(data_dir: Optional[str] = None) -> DataSession:
    session = DataSession(data_dir).load()

    if not session.admins:
        default_password = secrets.token_urlsafe(16)
        session.admins.append(Admin(
            id=1,
            name="Administrator",
            username=DEFAULT_ADMIN_USERNAME,
            password_hash=hash_password(default_password),
            position="System Administrator",
            department="IT",
        ))
        session.commit("admins")

        print("\n" + "=" * 70)
        print("DEFAULT ADMIN USER CREATED")
        print("=" * 70)
        print(f"Username: {DEFAULT_ADMIN_USERNAME}")
        print(f"Password: {default_password}")
        print("\nSECURITY: Change this password immediately after first login!")
        print("=" * 70 + "\n")

    return session
