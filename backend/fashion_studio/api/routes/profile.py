from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from fashion_studio.ai.image_utils import decode_image_bytes
from fashion_studio.api.deps import current_profile, get_event_bus, get_storage
from fashion_studio.api.schemas import ProfileOut, ProfileUpdate
from fashion_studio.core.config import MAX_UPLOAD_BYTES
from fashion_studio.core.paths import AVATAR_BUCKET
from fashion_studio.infra.db.crud import update_profile
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Profile
from fashion_studio.infra.realtime import RedisEventBus
from fashion_studio.infra.storage import LocalStorage, read_upload_or_413, suffix_for_content_type

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileOut)
def get_my_profile(profile: Profile = Depends(current_profile)):
    return profile


@router.patch("", response_model=ProfileOut)
def patch_my_profile(
    payload: ProfileUpdate,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    events: RedisEventBus = Depends(get_event_bus),
):
    row = update_profile(db, profile, payload.model_dump(exclude_unset=True))
    events.publish_change("profiles", "UPDATE", row.id, new=row)
    return row


@router.post("/avatar", response_model=ProfileOut)
def upload_avatar(
    file: UploadFile = File(...),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    events: RedisEventBus = Depends(get_event_bus),
):
    data = read_upload_or_413(file, MAX_UPLOAD_BYTES)
    decode_image_bytes(data)
    stored = storage.save(AVATAR_BUCKET, data, suffix=suffix_for_content_type(file.content_type))
    row = update_profile(db, profile, {"avatar_url": stored.url})
    events.publish_change("profiles", "UPDATE", row.id, new=row)
    return row
