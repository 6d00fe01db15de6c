"""
asyncpg pool shared by the record store and the source registry.

Sessions are pinned to UTC so that `created_at` comparisons in retention
queries match the timestamps the feed clients produce.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from tabloid.config.settings import get_settings

logger = logging.getLogger(__name__)


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.execute("SET TIME ZONE 'UTC'")


class Database:
    """
    Connection pool wrapper.

    Single statements go through execute()/fetch*(); statements that must
    land together use transaction():

        async with db.transaction() as conn:
            await conn.execute("DELETE FROM records WHERE source_id = $1", source_id)
            await conn.execute("DELETE FROM sources WHERE id = $1", source_id)
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        command_timeout: float = 30.0,
    ):
        settings = get_settings()

        self._dsn = database_url or str(settings.database_url)
        self._min_size = min_size or settings.db_pool_min_size
        self._max_size = max_size or settings.db_pool_max_size
        self._command_timeout = command_timeout
        self._pool: asyncpg.Pool | None = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    async def connect(self) -> None:
        """Open the pool. A second call is a no-op."""
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=self._command_timeout,
                init=_init_connection,
            )
        except (OSError, asyncpg.PostgresError) as e:
            logger.error("Could not open database pool: %s", e)
            raise
        logger.info("Database pool open (size %d-%d)", self._min_size, self._max_size)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Yield a connection inside a transaction; rolled back if the block raises."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement and return its status string (e.g. "DELETE 3")."""
        async with self.pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True if a trivial query round-trips."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except (RuntimeError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            logger.warning("Database health check failed: %s", e)
            return False


def affected_rows(status: str) -> int:
    """
    Row count from a command status.

    "DELETE 3" -> 3, "UPDATE 0" -> 0, "INSERT 0 1" -> 1.
    """
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0
