from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from src.core.config import Settings
from src.domain.models import AuthSession, User
from src.domain.ports import StoragePort
from src.infrastructure.db import Base, build_engine

TEST_PASSWORD = "correct-horse-battery"


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the process environment's .env file."""
    values: dict[str, Any] = {
        "environment": "test",
        "hostname": "app.test.internal",
        "local_latency_scale": 0,
        "session_secret": "test-session-secret-with-enough-bytes",
        "remote_url": "sqlite+aiosqlite:///:memory:",
        "remote_key": "test-remote-anon-key-0123456789abcdef",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@asynccontextmanager
async def sqlite_session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = build_engine(make_settings())
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


def threat_config(name: str = "Q1 threat review") -> dict[str, Any]:
    return {
        "domain": "threat-intelligence",
        "name": name,
        "frameworks": ["nist-csf"],
        "regions": ["eu"],
    }


def supply_chain_config(name: str = "Vendor review") -> dict[str, Any]:
    return {
        "domain": "supply-chain-risk",
        "name": name,
        "frameworks": ["iso27001"],
        "regions": ["na"],
    }


async def signup_and_login(
    engine: StoragePort,
    email: str = "analyst@example.com",
    *,
    first_name: str = "Ada",
    last_name: str = "Analyst",
) -> tuple[AuthSession, User]:
    session = AuthSession()
    signup = await engine.signup(session, email, TEST_PASSWORD, first_name, last_name, "Acme")
    assert signup.success, signup.message
    login = await engine.login(session, email, TEST_PASSWORD)
    assert login.success, login.message
    return session, login.data
