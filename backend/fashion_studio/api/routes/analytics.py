from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fashion_studio.api.deps import current_profile
from fashion_studio.api.schemas import UsageDay, UsageSummary
from fashion_studio.infra.db.database import get_db
from fashion_studio.infra.db.models import Profile
from fashion_studio.services.billing import usage_by_day, usage_summary

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/usage", response_model=List[UsageDay])
def usage(
    days: int = Query(default=7, ge=1, le=365),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    return usage_by_day(db, profile, days=days)


@router.get("/summary", response_model=UsageSummary)
def summary(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return usage_summary(db, profile)
