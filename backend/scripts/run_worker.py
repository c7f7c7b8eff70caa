# backend/scripts/run_worker.py
from __future__ import annotations

import logging

from rq import Worker

from fashion_studio.core.config import QUEUE_NAME
from fashion_studio.core.logging import configure_logging
from fashion_studio.infra.queue.rq import get_queue, get_redis

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging()
    redis_conn = get_redis()
    logger.info("RQ worker listening on '%s'", QUEUE_NAME)
    worker = Worker([get_queue()], connection=redis_conn)
    worker.work()


if __name__ == "__main__":
    main()
