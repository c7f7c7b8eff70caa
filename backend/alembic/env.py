# backend/alembic/env.py
from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import fashion_studio.infra.db.models  # noqa: F401  registers tables on Base.metadata
from fashion_studio.core.config import DATABASE_URL
from fashion_studio.infra.db.database import Base

config = context.config
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _options(is_sqlite: bool) -> dict:
    # SQLite reports UUID columns as NUMERIC and can only ALTER through batch mode
    return {
        "target_metadata": Base.metadata,
        "compare_type": not is_sqlite,
        "render_as_batch": is_sqlite,
    }


def run_migrations_offline() -> None:
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_options(DATABASE_URL.startswith("sqlite")),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_options(connection.dialect.name == "sqlite"))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
