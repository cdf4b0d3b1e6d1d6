"""Migrations for the audit_entries table.

The target URL comes from opgate Settings (DATABASE_URL or .env), so alembic and
the running gateway always agree on the database; alembic.ini's sqlalchemy.url
is the local SQLite default when no database_url is configured.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

from opgate.config import get_settings
from opgate.db.base import Base
import opgate.models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _database_url() -> str:
    return get_settings().database_url or config.get_main_option("sqlalchemy.url")


def _configure_and_run(**options) -> None:
    context.configure(target_metadata=Base.metadata, **options)
    with context.begin_transaction():
        context.run_migrations()


async def _run_online() -> None:
    engine = create_async_engine(_database_url(), poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(
            lambda sync_conn: _configure_and_run(connection=sync_conn),
        )
    await engine.dispose()


if context.is_offline_mode():
    _configure_and_run(url=_database_url(), literal_binds=True)
else:
    asyncio.run(_run_online())
