from __future__ import annotations

import json
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, Optional
from uuid import UUID

import redis
from sqlalchemy import inspect

logger = logging.getLogger(__name__)

CHANGE_EVENTS = ("INSERT", "UPDATE", "DELETE")


def channel_for(user_id: UUID | str) -> str:
    return f"changes:{user_id}"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_record(row: Any) -> Dict[str, Any]:
    """Column values of an ORM row, keyed by column name."""
    if isinstance(row, dict):
        return dict(row)
    mapper = inspect(row).mapper
    return {attr.columns[0].name: getattr(row, attr.key) for attr in mapper.column_attrs}


def build_change(
    table: str,
    event_type: str,
    *,
    new: Optional[Any] = None,
    old: Optional[Any] = None,
) -> Dict[str, Any]:
    if event_type not in CHANGE_EVENTS:
        raise ValueError(f"Unknown change event: {event_type}")
    return {
        "table": table,
        "event_type": event_type,
        "new": to_record(new) if new is not None else None,
        "old": to_record(old) if old is not None else None,
        "ts": datetime.now(timezone.utc).isoformat(),
    }


class RedisEventBus:
    """
    Row-change fan-out over Redis pub/sub, one channel per user.
    """

    def __init__(self, conn: redis.Redis) -> None:
        self._conn = conn

    def publish_change(
        self,
        table: str,
        event_type: str,
        user_id: UUID | str,
        *,
        new: Optional[Any] = None,
        old: Optional[Any] = None,
    ) -> Dict[str, Any]:
        event = build_change(table, event_type, new=new, old=old)
        self._conn.publish(channel_for(user_id), json.dumps(event, default=_json_default))
        return event

    def subscribe(self, user_id: UUID | str, keepalive_seconds: float = 15.0) -> Iterator[Optional[Dict[str, Any]]]:
        """
        Yields decoded events for the user; yields None when the channel was idle
        for `keepalive_seconds`.
        """
        pubsub = self._conn.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(channel_for(user_id))
        last = time.monotonic()
        try:
            while True:
                message = pubsub.get_message(timeout=1.0)
                if message and message.get("type") == "message":
                    last = time.monotonic()
                    data = message["data"]
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    yield json.loads(data)
                elif time.monotonic() - last >= keepalive_seconds:
                    last = time.monotonic()
                    yield None
        finally:
            pubsub.close()


def format_sse(event: Optional[Dict[str, Any]]) -> str:
    if event is None:
        return ": keep-alive\n\n"
    return f"data: {json.dumps(event, default=_json_default)}\n\n"
