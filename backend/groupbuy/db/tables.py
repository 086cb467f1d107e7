"""
Single source of truth for database tables that exist after migrations.

alembic/env.py and scripts/check_backend.py compare against these names.
"""
# All tables that exist in the DB. Must match models and migrations.
ALL_TABLE_NAMES = (
    "deals",
    "participants",
)
