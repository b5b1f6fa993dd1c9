"""Alembic migration environment configuration.

- Loads SQLAlchemy models for autogenerate support
- Configures database connection from environment
- Supports both online and offline migration modes
- Skips tables owned by other services (``info={"external": True}``)
"""

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

from autologistics.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _include_object(
    obj: Any,
    _name: str | None,
    type_: str,
    _reflected: bool,
    _compare_to: Any | None,
) -> bool:
    """Exclude externally owned tables from autogenerate comparisons."""
    if type_ == "table":
        return not obj.info.get("external", False)
    return True


def get_url() -> str:
    """Get the sync database URL.

    Priority:
    1. DATABASE_URL environment variable
    2. AUTOLOG_DATABASE__URL environment variable
    3. sqlalchemy.url from alembic.ini
    """
    url = os.environ.get("DATABASE_URL") or os.environ.get("AUTOLOG_DATABASE__URL")
    if not url:
        url = config.get_main_option("sqlalchemy.url", "")
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def run_migrations_offline() -> None:
    """Generate the SQL script without connecting to the database."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=_include_object,
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection within a transaction."""
    connectable = create_engine(
        get_url(),
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=_include_object,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
