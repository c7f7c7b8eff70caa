from fastapi import Depends, HTTPException
from rq import Queue
from sqlalchemy.orm import Session

from fashion_studio.core.config import PUBLIC_BASE_URL, STORAGE_DIR
from fashion_studio.infra.db.crud import get_profile
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import ApiKey, Profile
from fashion_studio.infra.queue.rq import get_queue as _rq_queue
from fashion_studio.infra.queue.rq import get_redis
from fashion_studio.infra.realtime import RedisEventBus
from fashion_studio.infra.storage import LocalStorage
from fashion_studio.security.auth import require_api_key
from fashion_studio.security.rate_limiter import SimpleRateLimiter

limiter = SimpleRateLimiter()


def current_profile(
    api_key: ApiKey = Depends(require_api_key),
    db: Session = Depends(get_db),
) -> Profile:
    limiter.check(str(api_key.id), int(api_key.rpm_limit or 60))
    return get_profile(db, api_key.user_id)


def require_admin(profile: Profile = Depends(current_profile)) -> Profile:
    if not profile.is_admin:
        raise HTTPException(
            status_code=403,
            detail={"error_code": "ADMIN_ONLY", "message": "Admin privileges required"},
        )
    return profile


def get_queue() -> Queue:
    return _rq_queue()


def get_event_bus() -> RedisEventBus:
    return RedisEventBus(get_redis())


def get_storage() -> LocalStorage:
    return LocalStorage(STORAGE_DIR, PUBLIC_BASE_URL)
