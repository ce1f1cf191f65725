"""asyncpg connection pool lifecycle.

The pool is created by the app lifespan and handed to ``PostgresCycleStore``.
Nothing here is module-global: callers keep the pool they get back.
"""

from __future__ import annotations

import logging

import asyncpg

from src.config import Settings

logger = logging.getLogger("femcare.db")


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    pool = await asyncpg.create_pool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=30,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        settings.db_pool_min_size,
        settings.db_pool_max_size,
    )
    return pool


async def close_pool(pool: asyncpg.Pool | None) -> None:
    """Drain the pool. Call at app shutdown."""
    if pool is not None:
        await pool.close()
        logger.info("Database pool closed")
