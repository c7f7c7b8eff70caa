import hashlib
import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from fashion_studio.infra.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    email = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)

    credits = Column(Integer, nullable=False, default=0)
    subscription_tier = Column(String, nullable=False, default="free")  # free|basic|pro|enterprise
    is_admin = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String, nullable=False, default="default")
    key_hash = Column(String, nullable=False, unique=True, index=True)
    key_prefix = Column(String, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    rpm_limit = Column(Integer, nullable=False, default=60)

    last_used_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    @staticmethod
    def generate() -> str:
        return "fs_" + secrets.token_urlsafe(32)

    @staticmethod
    def hash(key: str) -> str:
        return hashlib.sha256(key.encode("utf-8")).hexdigest()


class Generation(Base):
    __tablename__ = "generations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    model_image_url = Column(String, nullable=False)
    garment_image_url = Column(String, nullable=False)
    result_urls = Column(JSON, nullable=True)

    category = Column(String, nullable=False)  # tops|bottoms|full-body
    seed = Column(BigInteger, nullable=True)
    samples = Column(Integer, nullable=False, default=1)
    quality = Column(String, nullable=False, default="balanced")  # performance|balanced|quality

    status = Column(String, nullable=False, default="pending")  # pending|processing|completed|failed
    external_id = Column(String, nullable=True, index=True)
    error_message = Column(Text, nullable=True)
    processing_time = Column(Integer, nullable=True)  # ms

    template_id = Column(UUID(as_uuid=True), ForeignKey("templates.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)


class QueueItem(Base):
    __tablename__ = "generation_queue"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    generation_id = Column(
        UUID(as_uuid=True), ForeignKey("generations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    priority = Column(Integer, nullable=False, default=0)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)

    status = Column(String, nullable=False, default="queued")  # queued|processing|paused|completed|failed
    error_message = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=True)

    scheduled_at = Column(DateTime(timezone=True), default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)


class Template(Base):
    __tablename__ = "templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False)  # tops|bottoms|full-body|accessories

    model_image_url = Column(String, nullable=False)
    garment_image_url = Column(String, nullable=False)
    result_image_url = Column(String, nullable=True)

    tags = Column(JSON, nullable=False, default=list)
    is_public = Column(Boolean, nullable=False, default=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    usage_count = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    plan_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")  # active|canceled

    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)


class CreditEvent(Base):
    __tablename__ = "credit_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)  # signup|purchase|subscription|generation|adjustment

    generation_id = Column(UUID(as_uuid=True), nullable=True)
    reference = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
