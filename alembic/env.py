"""Alembic environment for the crime-zones schema.

The database URL is resolved in this order: ``alembic -x db_url=...``,
``DATABASE_URL_SYNC``, then the application's ``DATABASE_URL`` setting
rewritten for a synchronous driver.
"""

import os
import re
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

load_dotenv()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from crime_zones.config import settings  # noqa: E402
from crime_zones.database import Base, ensure_sqlite_directory  # noqa: E402
from crime_zones.models import CrimeIncident, GeographicBoundary  # noqa: E402, F401

target_metadata = Base.metadata

SYNC_DRIVERS = {
    "postgresql+asyncpg://": "postgresql://",
    "sqlite+aiosqlite://": "sqlite://",
}


def transform_url_for_sync(url: str) -> str:
    """Rewrite an async database URL for the sync driver Alembic runs on.

    ``ssl=`` is turned back into psycopg2's ``sslmode=``.
    """
    for async_prefix, sync_prefix in SYNC_DRIVERS.items():
        if url.startswith(async_prefix):
            url = sync_prefix + url[len(async_prefix) :]
            break
    return re.sub(r"\bssl=(\w+)", r"sslmode=\1", url)


def get_url() -> str:
    x_url = context.get_x_argument(as_dictionary=True).get("db_url")
    if x_url:
        return x_url

    sync_url = os.getenv("DATABASE_URL_SYNC")
    if sync_url:
        return sync_url

    return transform_url_for_sync(settings.database_url)


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without connecting."""
    url = get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply the migrations against a live connection."""
    url = get_url()
    ensure_sqlite_directory(url)

    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = url
    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        # SQLite cannot ALTER constraints in place
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
