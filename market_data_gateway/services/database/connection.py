"""PostgreSQL connection pool using asyncpg."""

import asyncio
from typing import Any, Optional

import asyncpg

from ...config.logging import get_logger
from ...config.settings import settings
from ...exceptions import DatabaseError

logger = get_logger(__name__)


class DatabaseConnection:
    """Process-wide asyncpg pool used for exchange account lookups."""

    _pool: Optional[asyncpg.Pool] = None
    _lock: Optional[asyncio.Lock] = None

    @classmethod
    def _get_lock(cls) -> asyncio.Lock:
        if cls._lock is None:
            cls._lock = asyncio.Lock()
        return cls._lock

    @classmethod
    async def create_pool(cls, min_size: int = 1, max_size: int = 10) -> asyncpg.Pool:
        """
        Create the connection pool if it does not exist yet.

        Raises:
            DatabaseError: If pool creation fails
        """
        async with cls._get_lock():
            if cls._pool is not None:
                return cls._pool
            try:
                logger.info(
                    "database_pool_creating",
                    host=settings.postgres_host,
                    port=settings.postgres_port,
                    database=settings.postgres_db,
                    min_size=min_size,
                    max_size=max_size,
                )
                cls._pool = await asyncpg.create_pool(
                    host=settings.postgres_host,
                    port=settings.postgres_port,
                    user=settings.postgres_user,
                    password=settings.postgres_password,
                    database=settings.postgres_db,
                    min_size=min_size,
                    max_size=max_size,
                    command_timeout=30,
                )
                return cls._pool
            except Exception as e:
                logger.error("database_pool_create_failed", error=str(e), exc_info=True)
                raise DatabaseError(f"Failed to create connection pool: {e}") from e

    @classmethod
    async def close_pool(cls) -> None:
        """Close the connection pool."""
        async with cls._get_lock():
            if cls._pool is not None:
                await cls._pool.close()
                cls._pool = None
                logger.info("database_pool_closed")

    @classmethod
    def is_connected(cls) -> bool:
        """Check if connection pool is available."""
        return cls._pool is not None and not cls._pool.is_closing()

    @classmethod
    async def _get_pool(cls) -> asyncpg.Pool:
        if cls._pool is None:
            await cls.create_pool()
        return cls._pool

    @classmethod
    async def fetchrow(cls, query: str, *args: Any) -> Optional[asyncpg.Record]:
        """Execute a query and fetch a single row."""
        pool = await cls._get_pool()
        try:
            return await pool.fetchrow(query, *args)
        except Exception as e:
            logger.error("database_fetchrow_failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Query fetchrow failed: {e}") from e
