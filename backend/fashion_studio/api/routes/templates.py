from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from fashion_studio.api.deps import current_profile
from fashion_studio.api.schemas import TemplateCreate, TemplateOut
from fashion_studio.core.errors import ForbiddenError
from fashion_studio.infra.db import crud
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Profile, Template

router = APIRouter(prefix="/templates", tags=["templates"])


def _visible_or_404(db: Session, profile: Profile, template_id: UUID) -> Template:
    t = crud.get_template(db, template_id)
    if not t or not (t.is_public or t.created_by == profile.id):
        raise HTTPException(
            status_code=404,
            detail={"error_code": "TEMPLATE_NOT_FOUND", "message": "Template not found"},
        )
    return t


def _owned_or_403(db: Session, profile: Profile, template_id: UUID) -> Template:
    t = _visible_or_404(db, profile, template_id)
    if t.created_by != profile.id:
        raise ForbiddenError("NOT_OWNER", "Only the template owner can do this")
    return t


@router.get("", response_model=List[TemplateOut])
def list_templates(
    search: Optional[str] = None,
    category: Optional[str] = None,
    mine: bool = False,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    return crud.list_visible_templates(db, profile.id, search=search, category=category, mine=mine)


@router.post("", response_model=TemplateOut, status_code=201)
def create_template(
    payload: TemplateCreate,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    category = payload.category
    model_image_url = payload.model_image_url
    garment_image_url = payload.garment_image_url
    result_image_url = payload.result_image_url

    if payload.generation_id is not None:
        gen = crud.get_user_generation(db, profile.id, payload.generation_id)
        if not gen:
            raise HTTPException(
                status_code=404,
                detail={"error_code": "GENERATION_NOT_FOUND", "message": "Generation not found"},
            )
        if gen.status != "completed":
            raise HTTPException(
                status_code=409,
                detail={"error_code": "GENERATION_NOT_COMPLETED", "message": f"Generation is {gen.status}"},
            )
        category = category or gen.category
        model_image_url = model_image_url or gen.model_image_url
        garment_image_url = garment_image_url or gen.garment_image_url
        result_image_url = result_image_url or (gen.result_urls or [None])[0]

    if not (category and model_image_url and garment_image_url):
        raise HTTPException(
            status_code=422,
            detail={
                "error_code": "TEMPLATE_INCOMPLETE",
                "message": "category, model_image_url and garment_image_url are required",
            },
        )

    return crud.create_template(
        db,
        name=payload.name,
        description=payload.description,
        category=category,
        model_image_url=model_image_url,
        garment_image_url=garment_image_url,
        result_image_url=result_image_url,
        tags=payload.tags,
        is_public=payload.is_public,
        created_by=profile.id,
    )


@router.post("/{template_id}/use", response_model=TemplateOut)
def use_template(
    template_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    t = _visible_or_404(db, profile, template_id)
    return crud.increment_template_usage(db, t)


@router.post("/{template_id}/visibility", response_model=TemplateOut)
def toggle_visibility(
    template_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    t = _owned_or_403(db, profile, template_id)
    t.is_public = not t.is_public
    db.commit()
    db.refresh(t)
    return t


@router.delete("/{template_id}", status_code=204)
def delete_template(
    template_id: UUID,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    t = _owned_or_403(db, profile, template_id)
    db.delete(t)
    db.commit()
    return Response(status_code=204)
