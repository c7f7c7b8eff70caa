from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from fashion_studio.api.deps import current_profile
from fashion_studio.api.schemas import ApiKeyCreate, ApiKeyCreated, ApiKeyOut
from fashion_studio.infra.db import crud
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Profile

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


@router.post("", response_model=ApiKeyCreated, status_code=201)
def create_key(
    payload: ApiKeyCreate,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    row, plaintext = crud.create_api_key(db, user_id=profile.id, name=payload.name, rpm_limit=payload.rpm_limit)
    out = ApiKeyOut.model_validate(row).model_dump()
    return ApiKeyCreated(**out, key=plaintext)


@router.get("", response_model=List[ApiKeyOut])
def list_keys(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return crud.list_api_keys(db, profile.id)


@router.delete("/{key_id}", status_code=204)
def revoke_key(
    key_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    row = crud.get_user_api_key(db, profile.id, key_id)
    if not row:
        raise HTTPException(
            status_code=404,
            detail={"error_code": "API_KEY_NOT_FOUND", "message": "API key not found"},
        )
    crud.revoke_api_key(db, row)
    return Response(status_code=204)
