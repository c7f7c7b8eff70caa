# backend/fashion_studio/infra/db/crud.py
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from fashion_studio.infra.db.models import (
    ApiKey,
    CreditEvent,
    Generation,
    Profile,
    QueueItem,
    Subscription,
    Template,
    utcnow,
)

INFLIGHT_STATUSES = ("pending", "processing")


def _is_sqlite(db: Session) -> bool:
    try:
        return db.bind.dialect.name == "sqlite"  # type: ignore[union-attr]
    except AttributeError:
        return False


# -----------------------------------------------------------------------------
# PROFILES
# -----------------------------------------------------------------------------
def create_profile(
    db: Session,
    *,
    email: str,
    full_name: Optional[str] = None,
    is_admin: bool = False,
    credits: int = 0,
) -> Profile:
    row = Profile(
        email=email.lower().strip(),
        full_name=full_name,
        is_admin=is_admin,
        credits=0,
        subscription_tier="free",
    )
    db.add(row)
    db.flush()
    if credits:
        apply_credit_delta(db, row, credits, reason="signup", commit=False)
    db.commit()
    db.refresh(row)
    return row


def get_profile(db: Session, profile_id: UUID) -> Optional[Profile]:
    return db.execute(select(Profile).where(Profile.id == profile_id)).scalar_one_or_none()


def lock_profile(db: Session, profile_id: UUID) -> Optional[Profile]:
    """
    Loads the profile with a row lock held until the caller commits or rolls back.
    Credit checks and balance changes for one profile run one at a time.
    """
    if _is_sqlite(db):
        # SQLite has no row locks; a no-op write takes the database write lock
        stmt = update(Profile).where(Profile.id == profile_id).values(credits=Profile.credits)
        db.execute(stmt.execution_options(synchronize_session=False))
    stmt = (
        select(Profile)
        .where(Profile.id == profile_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


def get_profile_by_email(db: Session, email: str) -> Optional[Profile]:
    stmt = select(Profile).where(Profile.email == email.lower().strip())
    return db.execute(stmt).scalar_one_or_none()


def update_profile(db: Session, profile: Profile, fields: Dict[str, Any]) -> Profile:
    for name in ("full_name", "avatar_url"):
        if name in fields:
            setattr(profile, name, fields[name])
    db.commit()
    db.refresh(profile)
    return profile


# -----------------------------------------------------------------------------
# CREDITS (ledger)
# -----------------------------------------------------------------------------
def apply_credit_delta(
    db: Session,
    profile: Profile,
    delta: int,
    *,
    reason: str,
    generation_id: Optional[UUID] = None,
    reference: Optional[str] = None,
    commit: bool = True,
) -> CreditEvent:
    """
    Changes the balance and appends a ledger row. The balance never drops below zero;
    the ledger records the delta that was actually applied.
    """
    current = int(profile.credits or 0)
    new_balance = max(0, current + int(delta))
    profile.credits = new_balance

    ev = CreditEvent(
        user_id=profile.id,
        delta=new_balance - current,
        balance_after=new_balance,
        reason=reason,
        generation_id=generation_id,
        reference=reference,
    )
    db.add(ev)
    if commit:
        db.commit()
        db.refresh(ev)
    return ev


def list_credit_events(db: Session, user_id: UUID, limit: int = 50) -> List[CreditEvent]:
    stmt = (
        select(CreditEvent)
        .where(CreditEvent.user_id == user_id)
        .order_by(CreditEvent.created_at.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


# -----------------------------------------------------------------------------
# API KEYS
# -----------------------------------------------------------------------------
def get_api_key_by_plaintext(db: Session, key: str) -> Optional[ApiKey]:
    stmt = select(ApiKey).where(ApiKey.key_hash == ApiKey.hash(key), ApiKey.is_active.is_(True))
    return db.execute(stmt).scalar_one_or_none()


def touch_api_key_last_used(db: Session, api_key: ApiKey) -> None:
    api_key.last_used_at = utcnow()
    db.commit()


def create_api_key(db: Session, *, user_id: UUID, name: str, rpm_limit: int = 60) -> Tuple[ApiKey, str]:
    plaintext = ApiKey.generate()
    row = ApiKey(
        user_id=user_id,
        name=name,
        key_hash=ApiKey.hash(plaintext),
        key_prefix=plaintext[:8],
        rpm_limit=int(rpm_limit),
        is_active=True,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row, plaintext


def list_api_keys(db: Session, user_id: UUID) -> List[ApiKey]:
    stmt = select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
    return list(db.execute(stmt).scalars().all())


def get_user_api_key(db: Session, user_id: UUID, key_id: UUID) -> Optional[ApiKey]:
    stmt = select(ApiKey).where(ApiKey.id == key_id, ApiKey.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def revoke_api_key(db: Session, api_key: ApiKey) -> None:
    api_key.is_active = False
    api_key.revoked_at = utcnow()
    db.commit()


# -----------------------------------------------------------------------------
# GENERATIONS
# -----------------------------------------------------------------------------
def create_generation(
    db: Session,
    *,
    user_id: UUID,
    model_image_url: str,
    garment_image_url: str,
    category: str,
    seed: Optional[int],
    samples: int,
    quality: str,
    template_id: Optional[UUID] = None,
    commit: bool = True,
) -> Generation:
    gen = Generation(
        user_id=user_id,
        model_image_url=model_image_url,
        garment_image_url=garment_image_url,
        category=category,
        seed=seed,
        samples=samples,
        quality=quality,
        status="pending",
        template_id=template_id,
    )
    db.add(gen)
    if commit:
        db.commit()
        db.refresh(gen)
    else:
        db.flush()
    return gen


def get_generation(db: Session, generation_id: UUID) -> Optional[Generation]:
    return db.execute(select(Generation).where(Generation.id == generation_id)).scalar_one_or_none()


def get_user_generation(db: Session, user_id: UUID, generation_id: UUID) -> Optional[Generation]:
    stmt = select(Generation).where(Generation.id == generation_id, Generation.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def list_generations(
    db: Session,
    *,
    user_id: Optional[UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Generation]:
    stmt = select(Generation).order_by(Generation.created_at.desc()).limit(limit).offset(offset)
    if user_id is not None:
        stmt = stmt.where(Generation.user_id == user_id)
    if status:
        stmt = stmt.where(Generation.status == status)
    return list(db.execute(stmt).scalars().all())


def count_inflight_generations(db: Session, user_id: UUID) -> int:
    stmt = select(func.count(Generation.id)).where(
        Generation.user_id == user_id,
        Generation.status.in_(INFLIGHT_STATUSES),
    )
    return int(db.execute(stmt).scalar_one() or 0)


def count_generations_by_status(db: Session, user_id: UUID) -> Dict[str, int]:
    stmt = (
        select(Generation.status, func.count(Generation.id))
        .where(Generation.user_id == user_id)
        .group_by(Generation.status)
    )
    return {status: int(n) for status, n in db.execute(stmt).all()}


def list_generation_activity(db: Session, user_id: UUID, *, days: int) -> List[Tuple[Any, str]]:
    cutoff = utcnow() - timedelta(days=days)
    stmt = (
        select(Generation.created_at, Generation.status)
        .where(Generation.user_id == user_id, Generation.created_at >= cutoff)
        .order_by(Generation.created_at.asc())
    )
    return [(created_at, status) for created_at, status in db.execute(stmt).all()]


def delete_generation(db: Session, gen: Generation) -> None:
    for item in list_queue_items_for_generation(db, gen.id):
        db.delete(item)
    db.delete(gen)
    db.commit()


# -----------------------------------------------------------------------------
# QUEUE
# -----------------------------------------------------------------------------
def create_queue_item(
    db: Session,
    *,
    user_id: UUID,
    generation_id: UUID,
    priority: int = 0,
    max_retries: int = 3,
    meta: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> QueueItem:
    item = QueueItem(
        user_id=user_id,
        generation_id=generation_id,
        priority=priority,
        max_retries=max_retries,
        retry_count=0,
        status="queued",
        scheduled_at=utcnow(),
        meta=meta,
    )
    db.add(item)
    if commit:
        db.commit()
        db.refresh(item)
    else:
        db.flush()
    return item


def get_queue_item(db: Session, item_id: UUID) -> Optional[QueueItem]:
    return db.execute(select(QueueItem).where(QueueItem.id == item_id)).scalar_one_or_none()


def get_user_queue_item(db: Session, user_id: UUID, item_id: UUID) -> Optional[QueueItem]:
    stmt = select(QueueItem).where(QueueItem.id == item_id, QueueItem.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def list_queue_items(db: Session, user_id: UUID) -> List[Tuple[QueueItem, Generation]]:
    stmt = (
        select(QueueItem, Generation)
        .join(Generation, Generation.id == QueueItem.generation_id)
        .where(QueueItem.user_id == user_id)
        .order_by(QueueItem.priority.desc(), QueueItem.created_at.asc())
    )
    return [(item, gen) for item, gen in db.execute(stmt).all()]


def list_queue_items_for_generation(db: Session, generation_id: UUID) -> List[QueueItem]:
    stmt = select(QueueItem).where(QueueItem.generation_id == generation_id)
    return list(db.execute(stmt).scalars().all())


def fail_stuck_generations(db: Session, timeout_seconds: int = 900) -> List[Generation]:
    now = utcnow()
    cutoff = now - timedelta(seconds=timeout_seconds)

    stmt = select(QueueItem).where(
        QueueItem.status == "processing",
        QueueItem.started_at.is_not(None),
        QueueItem.started_at < cutoff,
    )
    items = list(db.execute(stmt).scalars().all())

    failed: List[Generation] = []
    for item in items:
        item.status = "failed"
        item.error_message = "WORKER_TIMEOUT: generation stuck in processing"
        item.completed_at = now

        gen = get_generation(db, item.generation_id)
        if gen and gen.status == "processing":
            gen.status = "failed"
            gen.error_message = "WORKER_TIMEOUT: generation stuck in processing"
            failed.append(gen)

    if items:
        db.commit()

    return failed


# -----------------------------------------------------------------------------
# TEMPLATES
# -----------------------------------------------------------------------------
def create_template(
    db: Session,
    *,
    name: str,
    category: str,
    model_image_url: str,
    garment_image_url: str,
    created_by: Optional[UUID],
    description: Optional[str] = None,
    result_image_url: Optional[str] = None,
    tags: Optional[List[str]] = None,
    is_public: bool = False,
) -> Template:
    row = Template(
        name=name,
        description=description,
        category=category,
        model_image_url=model_image_url,
        garment_image_url=garment_image_url,
        result_image_url=result_image_url,
        tags=list(tags or []),
        is_public=is_public,
        created_by=created_by,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def get_template(db: Session, template_id: UUID) -> Optional[Template]:
    return db.execute(select(Template).where(Template.id == template_id)).scalar_one_or_none()


def list_visible_templates(
    db: Session,
    user_id: UUID,
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    mine: bool = False,
) -> List[Template]:
    stmt = select(Template).order_by(Template.usage_count.desc(), Template.created_at.desc())
    if mine:
        stmt = stmt.where(Template.created_by == user_id)
    else:
        stmt = stmt.where((Template.is_public.is_(True)) | (Template.created_by == user_id))
    if category and category != "all":
        stmt = stmt.where(Template.category == category)

    rows = list(db.execute(stmt).scalars().all())
    if not search:
        return rows

    # tags live in a JSON column, so the text match runs here instead of in SQL
    term = search.lower()
    return [
        t for t in rows
        if term in t.name.lower()
        or term in (t.description or "").lower()
        or any(term in tag.lower() for tag in (t.tags or []))
    ]


def increment_template_usage(db: Session, template: Template, *, commit: bool = True) -> Template:
    template.usage_count = int(template.usage_count or 0) + 1
    if commit:
        db.commit()
        db.refresh(template)
    return template


# -----------------------------------------------------------------------------
# SUBSCRIPTIONS
# -----------------------------------------------------------------------------
def get_active_subscription(db: Session, user_id: UUID) -> Optional[Subscription]:
    stmt = (
        select(Subscription)
        .where(Subscription.user_id == user_id, Subscription.status == "active")
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def replace_subscription(db: Session, *, profile: Profile, plan_id: str, period_days: int = 30) -> Subscription:
    now = utcnow()
    actives = db.execute(
        select(Subscription).where(Subscription.user_id == profile.id, Subscription.status == "active")
    ).scalars().all()
    for s in actives:
        s.status = "canceled"
        s.current_period_end = now

    sub = Subscription(
        user_id=profile.id,
        plan_id=plan_id,
        status="active",
        current_period_start=now,
        current_period_end=now + timedelta(days=period_days),
    )
    db.add(sub)
    profile.subscription_tier = plan_id
    db.flush()
    return sub
