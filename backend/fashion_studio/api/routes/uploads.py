from fastapi import APIRouter, Depends, File, UploadFile

from fashion_studio.ai.image_utils import decode_image_bytes, validate_garment_photo, validate_model_photo
from fashion_studio.api.deps import current_profile, get_storage
from fashion_studio.api.schemas import UploadResponse
from fashion_studio.core.config import MAX_UPLOAD_BYTES
from fashion_studio.core.paths import GARMENT_BUCKET, MODEL_BUCKET
from fashion_studio.infra.db.models import Profile
from fashion_studio.infra.storage import LocalStorage, read_upload_or_413, suffix_for_content_type

router = APIRouter(prefix="/uploads", tags=["uploads"])


def _store(file: UploadFile, bucket: str, validator, storage: LocalStorage) -> UploadResponse:
    data = read_upload_or_413(file, MAX_UPLOAD_BYTES)
    report = validator(decode_image_bytes(data))
    stored = storage.save(bucket, data, suffix=suffix_for_content_type(file.content_type))
    return UploadResponse(bucket=stored.bucket, path=stored.path, url=stored.url, report=report)


@router.post("/model", response_model=UploadResponse, status_code=201)
def upload_model(
    file: UploadFile = File(...),
    _profile: Profile = Depends(current_profile),
    storage: LocalStorage = Depends(get_storage),
):
    return _store(file, MODEL_BUCKET, validate_model_photo, storage)


@router.post("/garment", response_model=UploadResponse, status_code=201)
def upload_garment(
    file: UploadFile = File(...),
    _profile: Profile = Depends(current_profile),
    storage: LocalStorage = Depends(get_storage),
):
    return _store(file, GARMENT_BUCKET, validate_garment_photo, storage)


@router.post("/garment/validate")
def garment_validate(
    file: UploadFile = File(...),
    _profile: Profile = Depends(current_profile),
):
    data = read_upload_or_413(file, MAX_UPLOAD_BYTES)
    return validate_garment_photo(decode_image_bytes(data))


@router.post("/model/validate")
def model_validate(
    file: UploadFile = File(...),
    _profile: Profile = Depends(current_profile),
):
    data = read_upload_or_413(file, MAX_UPLOAD_BYTES)
    return validate_model_photo(decode_image_bytes(data))
