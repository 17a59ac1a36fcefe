"""
Redis Connection with Connection Pooling

Owns the redis.asyncio client used by RedisWindowStore when
RATE_LIMIT_BACKEND=redis. Only the connection lifecycle and health live
here; the window commands are issued by the store itself.
"""

import asyncio
import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisConnection:
    """
    Async Redis connection with a shared pool.

    Usage:
        connection = RedisConnection("redis://localhost:6379/0")
        client = await connection.connect()
        store = RedisWindowStore(client)
        ...
        await connection.disconnect()
    """

    def __init__(
        self,
        url: str,
        max_connections: int = 50,
        socket_timeout: float = 5.0,
        health_check_interval: int = 30,
    ):
        self._url = url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._health_check_interval = health_check_interval
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis | None:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> redis.Redis:
        """
        Create the pool and verify it with a PING.

        Raises:
            redis.exceptions.RedisError: When the server is unreachable
        """
        if self._client is not None:
            return self._client

        self._pool = ConnectionPool.from_url(
            self._url,
            max_connections=self._max_connections,
            socket_connect_timeout=self._socket_timeout,
            socket_timeout=self._socket_timeout,
            retry_on_timeout=True,
            health_check_interval=self._health_check_interval,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=self._pool)
        try:
            await client.ping()
        except RedisError as e:
            logger.error("Failed to connect to Redis", error=str(e))
            await client.aclose()
            await self._pool.disconnect()
            self._pool = None
            raise

        self._client = client
        logger.info("Redis connected", max_connections=self._max_connections)
        return client

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        logger.info("Redis disconnected")

    async def ping(self, timeout: float = 2.0) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await asyncio.wait_for(self._client.ping(), timeout=timeout))
        except (RedisError, asyncio.TimeoutError, OSError):
            return False

    async def health_check(self) -> dict[str, Any]:
        health: dict[str, Any] = {"status": "healthy", "connected": self.is_connected, "ping_latency_ms": None}
        if self._client is None:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        start = time.perf_counter()
        if await self.ping():
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        else:
            health["status"] = "unhealthy"
            health["error"] = "PING failed"
        return health
