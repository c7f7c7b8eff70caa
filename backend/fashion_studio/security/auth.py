from __future__ import annotations

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from fashion_studio.infra.db.crud import get_api_key_by_plaintext, get_profile, touch_api_key_last_used
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import ApiKey


def require_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> ApiKey:
    if not x_api_key:
        raise HTTPException(
            status_code=401,
            detail={"error_code": "MISSING_API_KEY", "message": "Missing X-API-Key header"},
        )

    key = get_api_key_by_plaintext(db, x_api_key)
    if not key or get_profile(db, key.user_id) is None:
        raise HTTPException(
            status_code=401,
            detail={"error_code": "INVALID_API_KEY", "message": "Invalid API key"},
        )

    touch_api_key_last_used(db, key)
    return key
