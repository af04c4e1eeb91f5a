"""Redis connection pool shared by the voucher store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Protocol, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class HasDatabaseSettings(Protocol):
    database_url: str
    database_max_connections: int
    database_socket_timeout: float


class DatabaseClient:
    """Lazily connected Redis client over a bounded, blocking pool.

    Commands and pool checkouts both wait at most ``database_socket_timeout``.
    """

    def __init__(self, settings: HasDatabaseSettings):
        self.settings = settings
        self._redis: Optional[redis.Redis] = None

    def initialize_database(self) -> None:
        """Create the pool. Connections are opened on first use."""
        # Expecting URL like: redis://host:port/0
        pool = redis.BlockingConnectionPool.from_url(
            self.settings.database_url,
            decode_responses=True,
            max_connections=self.settings.database_max_connections,
            timeout=self.settings.database_socket_timeout,
            socket_timeout=self.settings.database_socket_timeout,
            socket_connect_timeout=self.settings.database_socket_timeout,
        )
        self._redis = redis.Redis.from_pool(pool)
        logger.info(
            "Redis pool created (max_connections=%s, timeout=%ss)",
            self.settings.database_max_connections,
            self.settings.database_socket_timeout,
        )

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[redis.Redis, None]:
        """Yield the pooled client; connections go back to the pool, not closed."""
        if self._redis is None:
            self.initialize_database()
        assert self._redis is not None
        yield self._redis

    async def ping(self) -> bool:
        """True when Redis answers, False (logged) when it does not."""
        try:
            async with self.get_connection() as conn:
                return bool(await conn.ping())
        except (RedisError, OSError) as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


_db_client: Union[DatabaseClient, None] = None


def get_database_client(settings: HasDatabaseSettings) -> DatabaseClient:
    """Process-wide client, created on first call."""
    global _db_client
    if _db_client is None:
        _db_client = DatabaseClient(settings)
    return _db_client
