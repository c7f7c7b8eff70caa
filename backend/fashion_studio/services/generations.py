"""
Generation lifecycle on the API side: submission, deletion and queue control.

The worker half (calling the provider and settling results) lives in
`fashion_studio.workers.tasks`.
"""
from __future__ import annotations

import logging
from typing import Optional

from rq import Queue
from sqlalchemy.orm import Session

from fashion_studio.api.schemas import GenerationCreate
from fashion_studio.core.config import DEFAULT_MAX_RETRIES
from fashion_studio.core.errors import (
    ConflictError,
    InsufficientCreditsError,
    NotFoundError,
    ValidationFailed,
)
from fashion_studio.infra.db import crud
from fashion_studio.infra.db.models import Generation, Profile, QueueItem, utcnow
from fashion_studio.infra.queue.rq import enqueue_queue_item
from fashion_studio.infra.realtime import RedisEventBus, to_record

logger = logging.getLogger(__name__)

CREDITS_PER_GENERATION = 1

# seconds, shown to the client right after submission
ESTIMATED_TIME = {
    "performance": 3,
    "balanced": 5,
    "quality": 8,
}


def _reserve_credit(db: Session, profile: Profile) -> Profile:
    """
    Locks the profile and checks that its credits cover every in-flight generation
    plus one more. The lock is held until the caller commits.
    """
    locked = crud.lock_profile(db, profile.id)
    if locked is None:
        db.rollback()
        raise NotFoundError("PROFILE_NOT_FOUND", "Profile not found")

    inflight = crud.count_inflight_generations(db, locked.id)
    required = (inflight + 1) * CREDITS_PER_GENERATION
    credits = int(locked.credits or 0)
    if credits < required:
        db.rollback()
        raise InsufficientCreditsError(credits=credits, required=required)
    return locked


def submit_generation(
    db: Session,
    profile: Profile,
    payload: GenerationCreate,
    *,
    queue: Queue,
    events: RedisEventBus,
) -> tuple[Generation, QueueItem]:
    model_image_url = payload.model_image_url
    garment_image_url = payload.garment_image_url
    category: Optional[str] = payload.category

    template = None
    if payload.template_id is not None:
        template = crud.get_template(db, payload.template_id)
        if template is None or not (template.is_public or template.created_by == profile.id):
            raise NotFoundError("TEMPLATE_NOT_FOUND", "Template not found")
        model_image_url = model_image_url or template.model_image_url
        garment_image_url = garment_image_url or template.garment_image_url
        if category is None and template.category != "accessories":
            category = template.category

    if not model_image_url or not garment_image_url:
        raise ValidationFailed("IMAGES_REQUIRED", "Model and garment images are required")
    if category is None:
        raise ValidationFailed("CATEGORY_REQUIRED", "A garment category is required")

    profile = _reserve_credit(db, profile)

    gen = crud.create_generation(
        db,
        user_id=profile.id,
        model_image_url=model_image_url,
        garment_image_url=garment_image_url,
        category=category,
        seed=payload.seed,
        samples=payload.samples,
        quality=payload.quality,
        template_id=template.id if template is not None else None,
        commit=False,
    )
    item = crud.create_queue_item(
        db,
        user_id=profile.id,
        generation_id=gen.id,
        priority=payload.priority,
        max_retries=DEFAULT_MAX_RETRIES,
        meta={"source": "template" if template is not None else "direct"},
        commit=False,
    )
    if template is not None:
        crud.increment_template_usage(db, template, commit=False)
    db.commit()
    db.refresh(gen)
    db.refresh(item)

    enqueue_queue_item(queue, item)
    events.publish_change("generations", "INSERT", profile.id, new=gen)
    events.publish_change("generation_queue", "INSERT", profile.id, new=item)
    logger.info("generation %s submitted by %s (queue_item=%s)", gen.id, profile.id, item.id)
    return gen, item


def get_owned_generation(db: Session, profile: Profile, generation_id) -> Generation:
    gen = crud.get_user_generation(db, profile.id, generation_id)
    if gen is None:
        raise NotFoundError("GENERATION_NOT_FOUND", "Generation not found")
    return gen


def delete_generation(db: Session, profile: Profile, generation_id, *, events: RedisEventBus) -> None:
    gen = get_owned_generation(db, profile, generation_id)
    if gen.status == "processing":
        raise ConflictError("GENERATION_BUSY", "Generation is being processed and cannot be deleted")

    old = to_record(gen)
    crud.delete_generation(db, gen)
    events.publish_change("generations", "DELETE", profile.id, old=old)


# -----------------------------------------------------------------------------
# Queue control
# -----------------------------------------------------------------------------
def get_owned_queue_item(db: Session, profile: Profile, item_id) -> QueueItem:
    item = crud.get_user_queue_item(db, profile.id, item_id)
    if item is None:
        raise NotFoundError("QUEUE_ITEM_NOT_FOUND", "Queue item not found")
    return item


def _require_status(item: QueueItem, *allowed: str) -> None:
    if item.status not in allowed:
        raise ConflictError(
            "INVALID_TRANSITION",
            f"Queue item is {item.status}",
            {"status": item.status, "allowed": list(allowed)},
        )


def pause_queue_item(db: Session, profile: Profile, item_id, *, events: RedisEventBus) -> QueueItem:
    item = get_owned_queue_item(db, profile, item_id)
    _require_status(item, "queued")
    item.status = "paused"
    db.commit()
    db.refresh(item)
    events.publish_change("generation_queue", "UPDATE", profile.id, new=item)
    return item


def resume_queue_item(
    db: Session, profile: Profile, item_id, *, queue: Queue, events: RedisEventBus
) -> QueueItem:
    item = get_owned_queue_item(db, profile, item_id)
    _require_status(item, "paused")
    item.status = "queued"
    item.scheduled_at = utcnow()
    db.commit()
    db.refresh(item)
    enqueue_queue_item(queue, item)
    events.publish_change("generation_queue", "UPDATE", profile.id, new=item)
    return item


def retry_queue_item(
    db: Session, profile: Profile, item_id, *, queue: Queue, events: RedisEventBus
) -> QueueItem:
    item = get_owned_queue_item(db, profile, item_id)
    _require_status(item, "failed")

    gen = crud.get_generation(db, item.generation_id)
    if gen is None:
        raise NotFoundError("GENERATION_NOT_FOUND", "Generation not found")

    profile = _reserve_credit(db, profile)

    item.status = "queued"
    item.retry_count = 0
    item.error_message = None
    item.started_at = None
    item.completed_at = None
    item.scheduled_at = utcnow()

    gen.status = "pending"
    gen.error_message = None
    gen.external_id = None
    db.commit()
    db.refresh(item)
    db.refresh(gen)

    enqueue_queue_item(queue, item)
    events.publish_change("generation_queue", "UPDATE", profile.id, new=item)
    events.publish_change("generations", "UPDATE", profile.id, new=gen)
    return item


def delete_queue_item(db: Session, profile: Profile, item_id, *, events: RedisEventBus) -> None:
    item = get_owned_queue_item(db, profile, item_id)
    if item.status == "processing":
        raise ConflictError("QUEUE_ITEM_BUSY", "Queue item is being processed and cannot be deleted")

    gen = crud.get_generation(db, item.generation_id)
    old = to_record(item)
    db.delete(item)
    cancelled = gen is not None and gen.status == "pending"
    if cancelled:
        gen.status = "failed"
        gen.error_message = "Cancelled"
    db.commit()

    events.publish_change("generation_queue", "DELETE", profile.id, old=old)
    if cancelled:
        db.refresh(gen)
        events.publish_change("generations", "UPDATE", profile.id, new=gen)

