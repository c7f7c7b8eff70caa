from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from rq import Queue
from sqlalchemy.orm import Session

from fashion_studio.api.deps import current_profile, get_event_bus, get_queue
from fashion_studio.api.schemas import GenerationSummary, QueueItemOut
from fashion_studio.infra.db.crud import get_generation, list_queue_items
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Generation, Profile, QueueItem
from fashion_studio.infra.realtime import RedisEventBus
from fashion_studio.services import generations as service

router = APIRouter(prefix="/queue", tags=["queue"])


def _as_out(item: QueueItem, gen: Generation | None) -> QueueItemOut:
    summary = None
    if gen is not None:
        summary = GenerationSummary(
            category=gen.category,
            model_image_url=gen.model_image_url,
            garment_image_url=gen.garment_image_url,
            status=gen.status,
        )
    return QueueItemOut(
        id=item.id,
        generation_id=item.generation_id,
        priority=int(item.priority or 0),
        retry_count=int(item.retry_count or 0),
        max_retries=int(item.max_retries or 0),
        status=item.status,
        scheduled_at=item.scheduled_at,
        started_at=item.started_at,
        completed_at=item.completed_at,
        error_message=item.error_message,
        metadata=item.meta,
        generation=summary,
    )


@router.get("", response_model=List[QueueItemOut])
def list_queue(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return [_as_out(item, gen) for item, gen in list_queue_items(db, profile.id)]


@router.post("/{item_id}/pause", response_model=QueueItemOut)
def pause(
    item_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    events: RedisEventBus = Depends(get_event_bus),
):
    item = service.pause_queue_item(db, profile, item_id, events=events)
    return _as_out(item, get_generation(db, item.generation_id))


@router.post("/{item_id}/resume", response_model=QueueItemOut)
def resume(
    item_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    queue: Queue = Depends(get_queue),
    events: RedisEventBus = Depends(get_event_bus),
):
    item = service.resume_queue_item(db, profile, item_id, queue=queue, events=events)
    return _as_out(item, get_generation(db, item.generation_id))


@router.post("/{item_id}/retry", response_model=QueueItemOut)
def retry(
    item_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    queue: Queue = Depends(get_queue),
    events: RedisEventBus = Depends(get_event_bus),
):
    item = service.retry_queue_item(db, profile, item_id, queue=queue, events=events)
    return _as_out(item, get_generation(db, item.generation_id))


@router.delete("/{item_id}", status_code=204)
def delete(
    item_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    events: RedisEventBus = Depends(get_event_bus),
):
    service.delete_queue_item(db, profile, item_id, events=events)
    return Response(status_code=204)
