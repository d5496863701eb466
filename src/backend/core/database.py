"""
Database configuration for read-only report queries.

Report fetches open one short-lived session per store call, so the per-day
trend sub-fetches that run concurrently never share an AsyncSession and the
pool size bounds how many of them hit the store at once.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool options for server databases; SQLite keeps the driver defaults."""
    if url.startswith("sqlite"):
        return {}
    options: Dict[str, Any] = {
        "pool_size": settings.database.pool_size,
        "max_overflow": settings.database.max_overflow,
        "pool_timeout": settings.database.pool_timeout,
        "pool_recycle": settings.database.pool_recycle,
    }
    if "+asyncpg" in url:
        options["connect_args"] = {
            "server_settings": {"application_name": settings.api.app_name},
            "command_timeout": 60,
            "timeout": 30,
        }
    return options


def create_engine(url: str) -> AsyncEngine:
    """Create an async engine with the configured pool settings."""
    return create_async_engine(
        url,
        echo=settings.database.echo,
        future=True,
        **_engine_options(url),
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory for read queries (no autoflush, no expiry on commit)."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine(settings.database.url)

AsyncSessionLocal = create_session_factory(engine)


def get_session_factory() -> async_sessionmaker:
    """Dependency returning the application session factory."""
    return AsyncSessionLocal


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
