"""Alembic migration environment.

The database URL comes from the Config built by shelf.migrations, so the
CLI's configured data directory decides which file is migrated.
"""

from __future__ import annotations

from alembic import context
from sqlmodel import SQLModel, create_engine

# Register every table on SQLModel.metadata before Alembic inspects it.
from shelf import models as _models  # noqa: F401

target_metadata = SQLModel.metadata


def run_migrations_online() -> None:
    """Run migrations with a real database connection."""
    url = context.config.get_main_option("sqlalchemy.url")
    engine = create_engine(url, connect_args={"check_same_thread": False})
    with engine.connect() as conn:
        context.configure(connection=conn, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    raise RuntimeError(
        "Offline migration mode is not supported. "
        "Run without --sql."
    )
else:
    run_migrations_online()
