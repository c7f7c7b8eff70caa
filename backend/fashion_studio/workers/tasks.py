# backend/fashion_studio/workers/tasks.py
from __future__ import annotations

import logging
import time
import traceback
from pathlib import Path
from typing import Callable, List, Optional
from uuid import UUID

from rq import Queue
from sqlalchemy.orm import Session

from fashion_studio.core.config import MIRROR_RESULTS, PUBLIC_BASE_URL, STORAGE_DIR
from fashion_studio.core.logging import generation_log
from fashion_studio.core.paths import RESULTS_BUCKET
from fashion_studio.infra.db import crud
from fashion_studio.infra.db.database import SessionLocal
from fashion_studio.infra.db.models import Generation, QueueItem, utcnow
from fashion_studio.infra.fashn.client import FashnAPIError, FashnClient
from fashion_studio.infra.queue.rq import enqueue_queue_item, get_queue, get_redis
from fashion_studio.infra.realtime import RedisEventBus
from fashion_studio.infra.storage import LocalStorage
from fashion_studio.services.generations import CREDITS_PER_GENERATION

logger = logging.getLogger(__name__)


def _mirror_outputs(client: FashnClient, storage: LocalStorage, urls: List[str]) -> List[str]:
    mirrored = []
    for url in urls:
        suffix = Path(url.split("?", 1)[0]).suffix or ".png"
        stored = storage.save(RESULTS_BUCKET, client.download(url), suffix=suffix)
        mirrored.append(stored.url)
    return mirrored


def _publish(events: RedisEventBus, item: QueueItem, gen: Generation) -> None:
    events.publish_change("generation_queue", "UPDATE", item.user_id, new=item)
    events.publish_change("generations", "UPDATE", gen.user_id, new=gen)


def _settle_failure(
    db: Session,
    item: QueueItem,
    gen: Generation,
    exc: Exception,
    *,
    queue: Optional[Queue],
    events: RedisEventBus,
) -> str:
    """
    Requeues transient failures while retries remain, otherwise fails both rows.
    Returns the resulting queue item status.
    """
    gen_id = str(gen.id)
    message = f"{type(exc).__name__}: {exc}"[:2000]
    transient = isinstance(exc, FashnAPIError) and exc.transient

    if transient and int(item.retry_count or 0) < int(item.max_retries or 0) and queue is not None:
        item.retry_count = int(item.retry_count or 0) + 1
        item.status = "queued"
        item.error_message = message
        item.started_at = None
        item.scheduled_at = utcnow()
        gen.status = "pending"
        gen.external_id = None
        db.commit()
        db.refresh(item)
        db.refresh(gen)

        enqueue_queue_item(queue, item)
        generation_log(gen_id, f"transient failure, retry {item.retry_count}/{item.max_retries}: {message}")
        logger.warning("generation %s requeued (%s/%s): %s", gen_id, item.retry_count, item.max_retries, message)
    else:
        now = utcnow()
        item.status = "failed"
        item.error_message = message
        item.completed_at = now
        gen.status = "failed"
        gen.error_message = message
        db.commit()
        db.refresh(item)
        db.refresh(gen)

        generation_log(gen_id, f"ERROR: {message}")
        logger.error("generation %s failed: %s", gen_id, message)

    _publish(events, item, gen)
    return item.status


def run_generation(
    db: Session,
    queue_item_id: UUID,
    *,
    client: FashnClient,
    events: RedisEventBus,
    storage: LocalStorage,
    queue: Optional[Queue] = None,
    sleep: Callable[[float], None] = time.sleep,
    mirror_results: bool = MIRROR_RESULTS,
) -> Optional[str]:
    """
    Drives one queue item through the provider: run, poll, settle.
    Returns the final queue item status, or None when the item was not runnable.
    """
    item = crud.get_queue_item(db, queue_item_id)
    if item is None:
        logger.info("queue item %s no longer exists, skipping", queue_item_id)
        return None
    if item.status != "queued":
        logger.info("queue item %s is %s, skipping", queue_item_id, item.status)
        return None

    gen = crud.get_generation(db, item.generation_id)
    if gen is None:
        item.status = "failed"
        item.error_message = "Generation row missing"
        db.commit()
        return item.status

    gen_id = str(gen.id)
    item.status = "processing"
    item.started_at = utcnow()
    gen.status = "processing"
    gen.error_message = None
    db.commit()
    db.refresh(item)
    db.refresh(gen)
    _publish(events, item, gen)
    generation_log(gen_id, "processing started", extra={"attempt": int(item.retry_count or 0) + 1})

    started = time.monotonic()
    try:
        run = client.run(
            gen.model_image_url,
            gen.garment_image_url,
            gen.category,
            seed=gen.seed,
            samples=int(gen.samples or 1),
            quality=gen.quality,
        )
        gen.external_id = run.id
        db.commit()
        generation_log(gen_id, f"provider accepted prediction {run.id}")

        result = client.wait_for_completion(
            run.id,
            sleep=sleep,
            on_status=lambda s: generation_log(gen_id, f"provider status: {s.status}"),
        )
        urls = list(result.output)
        if not urls:
            raise FashnAPIError("Provider completed without output images", status_code=200)
        if mirror_results:
            urls = _mirror_outputs(client, storage, urls)

    except Exception as exc:
        db.rollback()
        generation_log(gen_id, traceback.format_exc())
        return _settle_failure(db, item, gen, exc, queue=queue, events=events)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    now = utcnow()
    gen.status = "completed"
    gen.result_urls = urls
    gen.processing_time = elapsed_ms
    gen.error_message = None
    item.status = "completed"
    item.completed_at = now
    item.error_message = None

    profile = crud.lock_profile(db, gen.user_id)
    if profile is not None:
        crud.apply_credit_delta(
            db,
            profile,
            -CREDITS_PER_GENERATION,
            reason="generation",
            generation_id=gen.id,
            commit=False,
        )
    db.commit()
    db.refresh(item)
    db.refresh(gen)

    _publish(events, item, gen)
    generation_log(gen_id, f"done: {len(urls)} image(s) in {elapsed_ms}ms")
    logger.info("generation %s completed in %sms", gen_id, elapsed_ms)
    return item.status


def fail_unstarted(db: Session, queue_item_id: UUID, exc: Exception, *, events: RedisEventBus) -> Optional[str]:
    """
    Fails a queue item the worker could not start, so it stops counting as in-flight.
    Items that are no longer queued are left alone.
    """
    item = crud.get_queue_item(db, queue_item_id)
    if item is None or item.status != "queued":
        return None

    gen = crud.get_generation(db, item.generation_id)
    if gen is None:
        item.status = "failed"
        item.error_message = "Generation row missing"
        db.commit()
        return item.status

    generation_log(str(gen.id), "worker setup failed")
    return _settle_failure(db, item, gen, exc, queue=None, events=events)


def process_generation(queue_item_id: str) -> Optional[str]:
    """RQ entry point."""
    item_id = UUID(queue_item_id)
    db: Session = SessionLocal()
    try:
        events = RedisEventBus(get_redis())
        try:
            client = FashnClient()
            storage = LocalStorage(STORAGE_DIR, PUBLIC_BASE_URL)
            queue = get_queue()
        except Exception as exc:
            fail_unstarted(db, item_id, exc, events=events)
            raise

        with client:
            return run_generation(
                db,
                item_id,
                client=client,
                events=events,
                storage=storage,
                queue=queue,
            )
    finally:
        db.close()
