from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from src.core.config import Settings
from src.domain.ports import StoragePort
from src.domain.services import reset_backend
from src.infrastructure.local import KeyValueStore, LocalEngine
from src.infrastructure.remote import RemoteEngine

from tests.utils import make_settings, sqlite_session_factory


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def store() -> KeyValueStore:
    return KeyValueStore()


@pytest.fixture()
def local_engine(store: KeyValueStore, settings: Settings) -> LocalEngine:
    return LocalEngine(store=store, settings=settings)


@pytest.fixture()
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    async with sqlite_session_factory() as factory:
        yield factory


@pytest.fixture()
def remote_engine(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> RemoteEngine:
    return RemoteEngine(session_factory=session_factory, settings=settings)


@pytest.fixture(params=["local", "remote"])
async def engine(request: pytest.FixtureRequest, settings: Settings) -> AsyncIterator[StoragePort]:
    """Each engine in turn, for properties both must satisfy."""
    if request.param == "local":
        yield LocalEngine(store=KeyValueStore(), settings=settings)
    else:
        async with sqlite_session_factory() as factory:
            yield RemoteEngine(session_factory=factory, settings=settings)


@pytest.fixture(autouse=True)
def _reset_selected_backend() -> None:
    reset_backend()
