"""Alembic environment for the notification schema.

The database URL comes from ``Settings.DATABASE_URL``; SQLite targets use
batch mode so column changes work there as well.
"""

from logging.config import fileConfig

from sqlalchemy import pool
from sqlmodel import SQLModel, create_engine

from alembic import context

from app.config import get_settings
from app.models import (  # noqa: F401
    DeliveryLog,
    NotificationPreference,
    NotificationRecord,
    NotificationTemplate,
    ScheduledNotification,
    User,
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def get_database_url() -> str:
    url = get_settings().DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL must be set to run migrations")
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def configure_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting."""
    url = get_database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **configure_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a live connection."""
    url = get_database_url()
    engine = create_engine(
        url,
        poolclass=pool.NullPool,
        connect_args={} if url.startswith("sqlite") else {"sslmode": "require"},
    )
    with engine.connect() as connection:
        context.configure(connection=connection, **configure_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
