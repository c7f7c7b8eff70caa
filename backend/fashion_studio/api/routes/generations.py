# backend/fashion_studio/api/routes/generations.py
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from rq import Queue
from sqlalchemy.orm import Session

from fashion_studio.api.deps import current_profile, get_event_bus, get_queue
from fashion_studio.api.schemas import GenerationCreate, GenerationCreateResponse, GenerationOut
from fashion_studio.infra.db.crud import list_generations
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Profile
from fashion_studio.infra.realtime import RedisEventBus
from fashion_studio.services import generations as service

router = APIRouter(prefix="/generations", tags=["generations"])


@router.post("", response_model=GenerationCreateResponse, status_code=202)
def create_generation(
    payload: GenerationCreate,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    queue: Queue = Depends(get_queue),
    events: RedisEventBus = Depends(get_event_bus),
):
    gen, item = service.submit_generation(db, profile, payload, queue=queue, events=events)
    return GenerationCreateResponse(
        id=gen.id,
        status=gen.status,
        queue_item_id=item.id,
        estimated_time=service.ESTIMATED_TIME[gen.quality],
    )


@router.get("", response_model=List[GenerationOut])
def list_my_generations(
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    return list_generations(db, user_id=profile.id, status=status, limit=limit, offset=offset)


@router.get("/{generation_id}", response_model=GenerationOut)
def get_generation(
    generation_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    return service.get_owned_generation(db, profile, generation_id)


@router.delete("/{generation_id}", status_code=204)
def delete_generation(
    generation_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    events: RedisEventBus = Depends(get_event_bus),
):
    service.delete_generation(db, profile, generation_id, events=events)
    return Response(status_code=204)
