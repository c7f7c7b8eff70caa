# backend/fashion_studio/workers/watchdog.py
from __future__ import annotations

import logging
import time

from sqlalchemy.orm import Session

from fashion_studio.core.config import STUCK_TIMEOUT_SECONDS
from fashion_studio.core.logging import configure_logging, generation_log
from fashion_studio.infra.db.crud import fail_stuck_generations
from fashion_studio.infra.db.database import SessionLocal
from fashion_studio.infra.queue.rq import get_redis
from fashion_studio.infra.realtime import RedisEventBus

logger = logging.getLogger(__name__)


def sweep(db: Session, events: RedisEventBus, timeout_seconds: int = STUCK_TIMEOUT_SECONDS) -> int:
    """Fails generations stuck in processing and announces them. Returns how many were failed."""
    failed = fail_stuck_generations(db, timeout_seconds=timeout_seconds)
    for gen in failed:
        generation_log(str(gen.id), "watchdog: stuck in processing, marked failed")
        events.publish_change("generations", "UPDATE", gen.user_id, new=gen)
    if failed:
        logger.warning("watchdog failed %s stuck generation(s)", len(failed))
    return len(failed)


def loop(poll_seconds: float = 60.0) -> None:
    configure_logging()
    logger.info("Watchdog started (timeout=%ss)", STUCK_TIMEOUT_SECONDS)
    events = RedisEventBus(get_redis())

    while True:
        db = SessionLocal()
        try:
            sweep(db, events)
        finally:
            db.close()
        time.sleep(poll_seconds)


if __name__ == "__main__":
    loop()
