"""baseline schema

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op

revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Baseline: every table from the current metadata
    # (profiles, api_keys, templates, generations, generation_queue, subscriptions, credit_events).
    from fashion_studio.infra.db.database import Base
    import fashion_studio.infra.db.models  # noqa: F401

    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    from fashion_studio.infra.db.database import Base
    import fashion_studio.infra.db.models  # noqa: F401

    Base.metadata.drop_all(bind=op.get_bind())
