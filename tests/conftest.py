import asyncio
import os
from collections.abc import Awaitable, Callable

# Settings are read at import time, so the environment must be set first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("AUTO_CREATE_TABLES", "true")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:3000")
os.environ.setdefault("REDIS_URL", "")

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import threadfolio.models  # noqa: F401
from threadfolio.core.security import create_access_token
from threadfolio.services.cache import counts_cache


@pytest.fixture
def counts_redis():
    """Back the counts cache with an in-memory Redis for the duration of a test."""
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    counts_cache.redis_client = client
    yield client
    counts_cache.redis_client = None


def run_with_session(fn: Callable[[AsyncSession], Awaitable]):
    """Run ``fn(session)`` against a fresh in-memory database and commit afterwards."""

    async def _run():
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        try:
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with maker() as session:
                result = await fn(session)
                await session.commit()
                return result
        finally:
            await engine.dispose()

    return asyncio.run(_run())


@pytest.fixture
def db():
    return run_with_session


def _auth_headers(subject: str = "owner-1", email: str | None = "owner@example.com") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject, email=email)}"}


@pytest.fixture
def auth_headers():
    return _auth_headers
