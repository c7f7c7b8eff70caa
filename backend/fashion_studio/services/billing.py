from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from fashion_studio.core.errors import NotFoundError, ValidationFailed
from fashion_studio.infra.db import crud
from fashion_studio.infra.db.models import CreditEvent, Profile, Subscription

logger = logging.getLogger(__name__)

# Credit packs sold through the hosted pricing widget.
CREDIT_PACKS: List[Dict[str, Any]] = [
    {"id": "starter", "name": "Starter Pack", "credits": 50, "price": 9.99, "popular": False},
    {"id": "popular", "name": "Popular Pack", "credits": 150, "price": 24.99, "popular": True},
    {"id": "pro", "name": "Pro Pack", "credits": 500, "price": 69.99, "popular": False},
]

SUBSCRIPTION_PLANS: List[Dict[str, Any]] = [
    {"id": "free", "name": "Free", "monthly_credits": 0, "price": 0.0},
    {"id": "basic", "name": "Basic", "monthly_credits": 100, "price": 19.0},
    {"id": "pro", "name": "Pro", "monthly_credits": 500, "price": 79.0},
    {"id": "enterprise", "name": "Enterprise", "monthly_credits": 2500, "price": 299.0},
]

SUBSCRIPTION_PERIOD_DAYS = 30


def list_packs() -> List[Dict[str, Any]]:
    return [dict(p, price_per_credit=round(p["price"] / p["credits"], 3)) for p in CREDIT_PACKS]


def get_pack(pack_id: str) -> Dict[str, Any]:
    for p in CREDIT_PACKS:
        if p["id"] == pack_id:
            return p
    raise NotFoundError("PACK_NOT_FOUND", f"Unknown credit pack: {pack_id}")


def get_plan(plan_id: str) -> Dict[str, Any]:
    for p in SUBSCRIPTION_PLANS:
        if p["id"] == plan_id:
            return p
    raise NotFoundError("PLAN_NOT_FOUND", f"Unknown subscription plan: {plan_id}")


def grant_credits(
    db: Session,
    profile: Profile,
    *,
    amount: Optional[int] = None,
    pack_id: Optional[str] = None,
    reason: str = "purchase",
    reference: Optional[str] = None,
) -> CreditEvent:
    if pack_id is not None:
        pack = get_pack(pack_id)
        amount = int(pack["credits"])
        reference = reference or f"pack:{pack_id}"
    if not amount or amount <= 0:
        raise ValidationFailed("INVALID_AMOUNT", "Either a positive amount or a pack_id is required")

    ev = crud.apply_credit_delta(db, profile, amount, reason=reason, reference=reference)
    logger.info("granted %s credits to %s (%s)", amount, profile.id, reason)
    return ev


def set_subscription(db: Session, profile: Profile, plan_id: str) -> Subscription:
    plan = get_plan(plan_id)
    sub = crud.replace_subscription(db, profile=profile, plan_id=plan_id, period_days=SUBSCRIPTION_PERIOD_DAYS)
    if plan["monthly_credits"]:
        crud.apply_credit_delta(
            db,
            profile,
            int(plan["monthly_credits"]),
            reason="subscription",
            reference=f"subscription:{sub.id}",
            commit=False,
        )
    db.commit()
    db.refresh(sub)
    logger.info("profile %s subscribed to %s", profile.id, plan_id)
    return sub


def usage_by_day(db: Session, profile: Profile, days: int = 7) -> List[Dict[str, Any]]:
    grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for created_at, status in crud.list_generation_activity(db, profile.id, days=days):
        day = created_at.date().isoformat()
        row = grouped.setdefault(day, {"date": day, "generations": 0, "credits_used": 0})
        row["generations"] += 1
        if status == "completed":
            row["credits_used"] += 1
    return list(grouped.values())


def usage_summary(db: Session, profile: Profile) -> Dict[str, Any]:
    counts = crud.count_generations_by_status(db, profile.id)
    total = sum(counts.values())
    completed = counts.get("completed", 0)
    return {
        "credits": int(profile.credits or 0),
        "subscription_tier": profile.subscription_tier,
        "total_generations": total,
        "completed_generations": completed,
        "failed_generations": counts.get("failed", 0),
        "success_rate": round(completed / total * 100, 2) if total else 0.0,
    }
