from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pytest

# configure the process before fashion_studio reads its settings
_TMP = Path(tempfile.mkdtemp(prefix="fashion-studio-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["STORAGE_DIR"] = str(_TMP / "storage")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ["FASHN_API_KEY"] = "test-fashn-key"
os.environ["SIGNUP_CREDITS"] = "10"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from fastapi.testclient import TestClient  # noqa: E402

from fashion_studio.api import deps  # noqa: E402
from fashion_studio.api.main import app  # noqa: E402
from fashion_studio.core.config import STORAGE_DIR  # noqa: E402
from fashion_studio.infra.db import crud  # noqa: E402
from fashion_studio.infra.db.database import Base, SessionLocal, engine, init_db  # noqa: E402
from fashion_studio.infra.realtime import build_change  # noqa: E402
from fashion_studio.infra.storage import LocalStorage  # noqa: E402


class RecordingQueue:
    """Stands in for an RQ queue; remembers what would have been enqueued."""

    def __init__(self) -> None:
        self.jobs: List[Dict[str, Any]] = []

    def enqueue(self, func, *args, **kwargs):
        self.jobs.append({"func": func, "args": args, "kwargs": kwargs})
        return None

    @property
    def item_ids(self) -> List[str]:
        return [job["args"][0] for job in self.jobs]


class RecordingEventBus:
    """In-memory event bus with the same surface as RedisEventBus."""

    def __init__(self, stream: Optional[List[Optional[Dict[str, Any]]]] = None) -> None:
        self.events: List[Dict[str, Any]] = []
        self.stream = list(stream or [])
        self.subscribed: List[str] = []

    def publish_change(self, table, event_type, user_id, *, new=None, old=None):
        event = build_change(table, event_type, new=new, old=old)
        event["user_id"] = str(user_id)
        self.events.append(event)
        return event

    def subscribe(self, user_id, keepalive_seconds: float = 15.0) -> Iterator[Optional[Dict[str, Any]]]:
        self.subscribed.append(str(user_id))
        yield from self.stream

    def of(self, table: str, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            e for e in self.events
            if e["table"] == table and (event_type is None or e["event_type"] == event_type)
        ]


@pytest.fixture(autouse=True)
def _fresh_database():
    import fashion_studio.infra.db.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    init_db()
    deps.limiter.reset()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def events() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def storage() -> LocalStorage:
    return LocalStorage(STORAGE_DIR, "http://testserver")


@pytest.fixture
def client(queue, events, storage):
    app.dependency_overrides[deps.get_queue] = lambda: queue
    app.dependency_overrides[deps.get_event_bus] = lambda: events
    app.dependency_overrides[deps.get_storage] = lambda: storage
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Creates a profile plus API key and returns (profile, headers)."""

    def _make(email: str = "user@example.com", *, credits: int = 10, is_admin: bool = False, rpm_limit: int = 600):
        profile = crud.create_profile(db, email=email, is_admin=is_admin, credits=credits)
        _, key = crud.create_api_key(db, user_id=profile.id, name="test", rpm_limit=rpm_limit)
        return profile, {"X-API-Key": key}

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", is_admin=True)
