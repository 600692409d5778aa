"""Alembic migration environment.

Runs migrations against settings.database_url_sync. Logging is left to the
application; no ini-driven fileConfig() call is made.
"""

from alembic import context
from sqlalchemy import engine_from_config, pool

from starter_auth.core.config import settings
from starter_auth.models import Base

config = context.config

target_metadata = Base.metadata


def _database_url() -> str:
    # An explicit sqlalchemy.url (set by tests) wins over settings
    return config.get_main_option("sqlalchemy.url") or settings.database_url_sync


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a live connection."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations over a real connection."""
    connectable = engine_from_config(
        {"sqlalchemy.url": _database_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
