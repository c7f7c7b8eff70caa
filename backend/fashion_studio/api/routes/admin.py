from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fashion_studio.api.deps import get_event_bus, require_admin
from fashion_studio.api.schemas import (
    AdminProfileCreate,
    AdminProfileCreated,
    CreditEventOut,
    CreditGrant,
    GenerationOut,
    ProfileOut,
    SubscriptionOut,
    SubscriptionSet,
)
from fashion_studio.core.config import SIGNUP_CREDITS
from fashion_studio.core.errors import ConflictError, NotFoundError
from fashion_studio.infra.db import crud
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Profile
from fashion_studio.infra.realtime import RedisEventBus
from fashion_studio.services import billing
from fashion_studio.workers.watchdog import sweep

router = APIRouter(prefix="/admin", tags=["admin"])


def _profile_or_404(db: Session, profile_id: UUID) -> Profile:
    row = crud.get_profile(db, profile_id)
    if not row:
        raise NotFoundError("PROFILE_NOT_FOUND", "Profile not found")
    return row


@router.post("/profiles", response_model=AdminProfileCreated, status_code=201)
def create_profile(
    payload: AdminProfileCreate,
    _admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if crud.get_profile_by_email(db, payload.email):
        raise ConflictError("EMAIL_TAKEN", "A profile with this email already exists")

    profile = crud.create_profile(
        db,
        email=payload.email,
        full_name=payload.full_name,
        is_admin=payload.is_admin,
        credits=SIGNUP_CREDITS,
    )
    _, plaintext = crud.create_api_key(db, user_id=profile.id, name="default")
    return AdminProfileCreated(profile=ProfileOut.model_validate(profile), api_key=plaintext)


@router.post("/profiles/{profile_id}/credits", response_model=CreditEventOut)
def grant_credits(
    profile_id: UUID,
    payload: CreditGrant,
    _admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    events: RedisEventBus = Depends(get_event_bus),
):
    profile = _profile_or_404(db, profile_id)
    ev = billing.grant_credits(
        db,
        profile,
        amount=payload.amount,
        pack_id=payload.pack_id,
        reason=payload.reason,
        reference=payload.reference,
    )
    events.publish_change("profiles", "UPDATE", profile.id, new=profile)
    return ev


@router.post("/profiles/{profile_id}/subscription", response_model=SubscriptionOut)
def set_subscription(
    profile_id: UUID,
    payload: SubscriptionSet,
    _admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    events: RedisEventBus = Depends(get_event_bus),
):
    profile = _profile_or_404(db, profile_id)
    sub = billing.set_subscription(db, profile, payload.plan_id)
    db.refresh(profile)
    events.publish_change("profiles", "UPDATE", profile.id, new=profile)
    return sub


@router.get("/generations", response_model=List[GenerationOut])
def admin_list_generations(
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    _admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return crud.list_generations(db, status=status, limit=limit)


@router.post("/watchdog")
def run_watchdog(
    _admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    events: RedisEventBus = Depends(get_event_bus),
):
    return {"failed": sweep(db, events)}
