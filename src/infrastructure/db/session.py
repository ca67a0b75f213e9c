from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from src.core.config import Settings, get_settings
from src.core.errors import ConfigurationError

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine for ``settings.remote_url``.

    An in-memory sqlite URL gets a single shared connection, otherwise every
    checkout would see its own empty database.
    """
    if not settings.remote_configured:
        raise ConfigurationError()

    url = settings.async_remote_url
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, future=True, pool_pre_ping=True)


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Process-wide session factory; the first caller's settings win."""
    global _engine, _session_factory

    if _session_factory is None:
        _engine = build_engine(settings or get_settings())
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
