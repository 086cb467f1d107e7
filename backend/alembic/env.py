"""
Alembic environment for the group deals schema.

DATABASE_URL comes from groupbuy.config (backend/.env). SQLite URLs run in batch mode so
ALTERs work in local dev databases.
"""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import groupbuy.models  # noqa: F401  registers Deal and Participant on Base.metadata
from groupbuy.config import settings
from groupbuy.db import ALL_TABLE_NAMES, Base

_missing = set(ALL_TABLE_NAMES) ^ set(Base.metadata.tables)
if _missing:
    raise RuntimeError(f"Models and groupbuy.db.tables.ALL_TABLE_NAMES disagree on: {sorted(_missing)}")

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = Base.metadata
_is_sqlite = settings.database_url.startswith("sqlite")


def _configure_kwargs() -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": _is_sqlite,
    }


def run_migrations_offline() -> None:
    context.configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
