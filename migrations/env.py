"""Alembic environment bound to the application's async engine.

Run from the repository root (``alembic upgrade head``); the database URL comes
from ``TUBELY_DB_URL`` like the API's, not from alembic.ini.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

from tubely.core.config import get_settings
from tubely.core.db import Base, create_engine
from tubely.db import models  # noqa: F401  registers the videos table on Base.metadata

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)


def _apply(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=Base.metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def upgrade_database() -> None:
    engine = create_engine(get_settings())
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_apply)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    raise SystemExit("Offline (--sql) migrations are not supported; point TUBELY_DB_URL at a database instead.")

asyncio.run(upgrade_database())
