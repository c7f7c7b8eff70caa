from __future__ import annotations

import logging

import redis
from rq import Queue

from fashion_studio.core.config import JOB_TIMEOUT_SECONDS, QUEUE_NAME, REDIS_URL
from fashion_studio.infra.db.models import QueueItem

logger = logging.getLogger(__name__)


def get_redis() -> redis.Redis:
    return redis.from_url(REDIS_URL)


def get_queue() -> Queue:
    return Queue(QUEUE_NAME, connection=get_redis())


def enqueue_queue_item(queue: Queue, item: QueueItem):
    from fashion_studio.workers.tasks import process_generation

    job = queue.enqueue(
        process_generation,
        str(item.id),
        job_timeout=JOB_TIMEOUT_SECONDS,
        at_front=int(item.priority or 0) > 0,
    )
    logger.info("enqueued queue_item=%s generation=%s priority=%s", item.id, item.generation_id, item.priority)
    return job
