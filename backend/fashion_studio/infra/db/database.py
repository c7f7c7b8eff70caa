# backend/fashion_studio/infra/db/database.py
from __future__ import annotations

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from fashion_studio.core.config import DATABASE_URL

_engine_kwargs = {
    "pool_pre_ping": True,
    "future": True,
}

# SQLite needs its own connect_args
if DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

Base = declarative_base()


def init_db() -> None:
    """
    Creates every table. Production databases are migrated with Alembic instead.
    """
    import fashion_studio.infra.db.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
