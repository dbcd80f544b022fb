"""Async engine and session factory backing the SQL call ledger."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import Settings, settings


def build_engine(config: Settings) -> AsyncEngine:
    """Create the asyncpg engine described by ``config``."""

    connect_args: dict[str, object] = {}
    if config.database_ssl_required:
        connect_args["ssl"] = True
    return create_async_engine(
        config.database_async_url,
        echo=False,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


engine = build_engine(settings)
# Ledger rows are read after commit, so attributes must not expire.
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
