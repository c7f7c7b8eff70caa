# backend/scripts/create_api_key.py
from __future__ import annotations

import argparse

from fashion_studio.core.config import SIGNUP_CREDITS
from fashion_studio.infra.db.crud import create_api_key, create_profile, get_profile_by_email
from fashion_studio.infra.db.database import SessionLocal


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an admin profile (if missing) and print a new API key.")
    parser.add_argument("--email", default="admin@localhost")
    parser.add_argument("--name", default="local-dev")
    parser.add_argument("--rpm", type=int, default=60)
    args = parser.parse_args()

    db = SessionLocal()
    try:
        profile = get_profile_by_email(db, args.email)
        if profile is None:
            profile = create_profile(db, email=args.email, is_admin=True, credits=SIGNUP_CREDITS)
            print(f"Created admin profile {profile.id} ({profile.email})")

        _, key = create_api_key(db, user_id=profile.id, name=args.name, rpm_limit=args.rpm)
        print("API key created (shown once):")
        print(key)
    finally:
        db.close()


if __name__ == "__main__":
    main()
