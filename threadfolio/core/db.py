import logging
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from threadfolio.core.config import settings

logger = logging.getLogger(__name__)


def _async_database_url(url: str) -> str:
    """Use asyncpg for postgres URLs. asyncpg does not accept psycopg params like sslmode/channel_binding."""
    parsed = urlparse(url)
    if parsed.scheme not in ("postgresql", "postgres"):
        return url
    query = parse_qs(parsed.query, keep_blank_values=True)
    query.pop("sslmode", None)
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    return urlunparse(
        ("postgresql+asyncpg", parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment)
    )


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection or every session sees an empty database
        if make_url(url).database in (None, "", ":memory:"):
            return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "connect_args": {"ssl": True} if settings.env == "production" else {},
    }


async_database_url = _async_database_url(settings.database_url)

engine = create_async_engine(
    async_database_url,
    echo=settings.env == "development",
    **_engine_kwargs(async_database_url),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request: committed when the handler returns, rolled back if it raises."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            logger.debug("Rolling back request session after %s", type(exc).__name__)
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    # Register every table on the metadata before create_all
    import threadfolio.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
