"""
Async SQLAlchemy engine & session factory (asyncpg driver).

The engine is built once per application from its settings and kept on
``app.state``; requests check a session out of the factory and hand it back
on every exit path.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker, create_async_engine)
from sqlalchemy.pool import StaticPool

from app.core.config import Settings


def build_engine(settings: Settings) -> AsyncEngine:
    url = settings.DATABASE_URL
    engine_args: dict[str, Any] = {
        "echo": False,
        "pool_pre_ping": True,
    }

    if "postgresql" in url:
        engine_args.update(
            {
                "pool_size": settings.DB_POOL_SIZE,
                "max_overflow": settings.DB_MAX_OVERFLOW,
                "pool_timeout": settings.DB_POOL_TIMEOUT,
                "pool_recycle": 300,
            }
        )
        if "asyncpg" in url:
            engine_args["connect_args"] = {
                "timeout": settings.DB_CONNECT_TIMEOUT,
                "command_timeout": settings.DB_COMMAND_TIMEOUT,
            }
    elif url.startswith("sqlite") and ":memory:" in url:
        # One shared connection, otherwise every checkout sees an empty database
        engine_args.update(
            {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        )

    return create_async_engine(url, **engine_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
