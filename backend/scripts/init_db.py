# backend/scripts/init_db.py
from __future__ import annotations

from fashion_studio.core.logging import configure_logging
from fashion_studio.infra.db.database import init_db


def main() -> None:
    """
    Creates every table on the configured database.
    Handy for local SQLite setups; against Postgres run `alembic upgrade head` instead.
    """
    configure_logging()
    init_db()
    print("Tables created.")


if __name__ == "__main__":
    main()
