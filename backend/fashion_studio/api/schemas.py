from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Category = Literal["tops", "bottoms", "full-body"]
TemplateCategory = Literal["tops", "bottoms", "full-body", "accessories"]
Quality = Literal["performance", "balanced", "quality"]

MAX_SEED = 2**32 - 1


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- generations -------------------------------------------------------------
class GenerationCreate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_image_url: Optional[str] = None
    garment_image_url: Optional[str] = None
    category: Optional[Category] = None
    seed: Optional[int] = Field(default=None, ge=0, le=MAX_SEED)
    samples: int = Field(default=1, ge=1, le=4)
    quality: Quality = "balanced"
    priority: int = Field(default=0, ge=0, le=10)
    template_id: Optional[UUID] = None


class GenerationCreateResponse(BaseModel):
    id: UUID
    status: str
    queue_item_id: UUID
    estimated_time: int


class GenerationOut(ORMModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: UUID
    user_id: UUID
    model_image_url: str
    garment_image_url: str
    result_urls: Optional[List[str]] = None
    category: str
    seed: Optional[int] = None
    samples: int
    quality: str
    status: str
    external_id: Optional[str] = None
    error_message: Optional[str] = None
    processing_time: Optional[int] = None
    template_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


# --- queue -------------------------------------------------------------------
class GenerationSummary(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    category: str
    model_image_url: str
    garment_image_url: str
    status: str


class QueueItemOut(BaseModel):
    id: UUID
    generation_id: UUID
    priority: int
    retry_count: int
    max_retries: int
    status: str
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    generation: Optional[GenerationSummary] = None


# --- templates ---------------------------------------------------------------
class TemplateCreate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    category: Optional[TemplateCategory] = None
    model_image_url: Optional[str] = None
    garment_image_url: Optional[str] = None
    result_image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_public: bool = False
    generation_id: Optional[UUID] = None


class TemplateOut(ORMModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: UUID
    name: str
    description: Optional[str] = None
    category: str
    model_image_url: str
    garment_image_url: str
    result_image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_public: bool
    created_by: Optional[UUID] = None
    usage_count: int
    rating: float
    created_at: datetime


# --- profile -----------------------------------------------------------------
class ProfileOut(ORMModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    credits: int
    subscription_tier: str
    is_admin: bool
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=200)
    avatar_url: Optional[str] = None


# --- api keys ----------------------------------------------------------------
class ApiKeyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    rpm_limit: int = Field(default=60, ge=1, le=6000)


class ApiKeyOut(ORMModel):
    id: UUID
    name: str
    key_prefix: str
    rpm_limit: int
    is_active: bool
    last_used_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime


class ApiKeyCreated(ApiKeyOut):
    key: str


# --- billing -----------------------------------------------------------------
class CreditEventOut(ORMModel):
    id: UUID
    delta: int
    balance_after: int
    reason: str
    generation_id: Optional[UUID] = None
    reference: Optional[str] = None
    created_at: datetime


class SubscriptionOut(ORMModel):
    id: UUID
    plan_id: str
    status: str
    current_period_start: datetime
    current_period_end: datetime


class SubscriptionStatus(BaseModel):
    tier: str
    subscription: Optional[SubscriptionOut] = None


# --- analytics ---------------------------------------------------------------
class UsageDay(BaseModel):
    date: str
    generations: int
    credits_used: int


class UsageSummary(BaseModel):
    credits: int
    subscription_tier: str
    total_generations: int
    completed_generations: int
    failed_generations: int
    success_rate: float


# --- uploads -----------------------------------------------------------------
class UploadResponse(BaseModel):
    bucket: str
    path: str
    url: str
    report: Optional[Dict[str, Any]] = None


# --- admin -------------------------------------------------------------------
class AdminProfileCreate(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    full_name: Optional[str] = None
    is_admin: bool = False


class AdminProfileCreated(BaseModel):
    profile: ProfileOut
    api_key: str


class CreditGrant(BaseModel):
    amount: Optional[int] = Field(default=None, ge=1)
    pack_id: Optional[str] = None
    reason: Literal["purchase", "adjustment"] = "purchase"
    reference: Optional[str] = None


class SubscriptionSet(BaseModel):
    plan_id: str
