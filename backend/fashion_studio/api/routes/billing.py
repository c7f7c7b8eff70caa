from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fashion_studio.api.deps import current_profile
from fashion_studio.api.schemas import CreditEventOut, SubscriptionOut, SubscriptionStatus
from fashion_studio.infra.db.crud import get_active_subscription, list_credit_events
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Profile
from fashion_studio.services import billing

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/packs")
def list_credit_packs():
    return billing.list_packs()


@router.get("/plans")
def list_plans():
    return billing.SUBSCRIPTION_PLANS


@router.get("/subscription", response_model=SubscriptionStatus)
def my_subscription(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    sub = get_active_subscription(db, profile.id)
    return SubscriptionStatus(
        tier=profile.subscription_tier,
        subscription=SubscriptionOut.model_validate(sub) if sub else None,
    )


@router.get("/credits/history", response_model=List[CreditEventOut])
def credit_history(
    limit: int = Query(default=50, ge=1, le=200),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    return list_credit_events(db, profile.id, limit=limit)
