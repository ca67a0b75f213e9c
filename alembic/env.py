from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from src.core.config import get_settings
from src.infrastructure.db import models  # noqa: F401
from src.infrastructure.db.base import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_remote_url() -> str:
    """REMOTE_URL from settings, falling back to ``sqlalchemy.url`` in alembic.ini."""
    settings = get_settings()
    if settings.remote_url:
        return settings.async_remote_url
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("REMOTE_URL is not set and alembic has no sqlalchemy.url")
    return url


def _configure(**kwargs: object) -> None:
    url = get_remote_url()
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # sqlite cannot ALTER most columns in place
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=get_remote_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(get_remote_url(), poolclass=NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
