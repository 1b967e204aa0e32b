"""Alembic environment configuration.

Learn: Alembic runs synchronously, so online migrations open an async
engine and hand its connection to run_sync(). The URL always comes from
CONNECTSPHERE_DATABASE_URL, never from alembic.ini, so migrations and the
app can never point at different databases.

SQLite (local dev) can't ALTER most columns, so migrations there run in
batch mode: Alembic copies the table, changes it, and swaps it in.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from connectsphere.config import settings
from connectsphere.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
DATABASE_URL = settings.database_url


def _configure_kwargs() -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": DATABASE_URL.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit the SQL script instead of touching a database."""
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(connection=connection, **_configure_kwargs())
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    # NullPool: one short-lived connection, nothing left open afterwards.
    connectable = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
