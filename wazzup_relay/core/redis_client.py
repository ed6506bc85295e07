"""
Redis connection shared by the outbound queue and the stop-flag store.

The connection is opened on first use. Concurrent first-use callers wait on
the same connection attempt instead of each opening their own.
"""
import asyncio
from enum import Enum
from typing import Any, Callable
from urllib.parse import urlparse

import redis.asyncio as aioredis

from wazzup_relay.core.exceptions import ConfigurationError
from wazzup_relay.core.logging import get_logger

logger = get_logger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _mask_redis_url(url: str) -> str:
    """Hide the password in REDIS_URL for logs (redis://:****@host:6379)."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            return url.replace(f":{parsed.password}@", ":****@")
        return url
    except Exception:
        return "redis://****"


class RedisConnection:
    """
    Lazily opened, shared Redis client.

    State transitions happen under ``_lock``:
    - DISCONNECTED -> CONNECTING: the first caller spawns the connect task
    - CONNECTING -> CONNECTED: the task succeeded, every waiter gets the client
    - CONNECTING -> DISCONNECTED: the task failed, the next caller tries again
    """

    def __init__(
        self,
        redis_url: str | None,
        *,
        component: str = "RedisConnection",
        client_factory: Callable[..., Any] | None = None,
    ) -> None:
        if not redis_url:
            raise ConfigurationError("REDIS_URL", component)

        self._redis_url = redis_url
        self._client_factory = client_factory or aioredis.from_url
        self._lock = asyncio.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._client: aioredis.Redis | None = None
        self._pending: asyncio.Task | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def _open(self) -> aioredis.Redis:
        client = self._client_factory(self._redis_url, decode_responses=True)
        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        logger.info("Redis client initialized", extra_data={
            "url": _mask_redis_url(self._redis_url),
        })
        return client

    async def get_client(self) -> aioredis.Redis:
        """Return the connected client, opening the connection if needed."""
        if self._state is ConnectionState.CONNECTED and self._client is not None:
            return self._client

        async with self._lock:
            if self._state is ConnectionState.CONNECTED and self._client is not None:
                return self._client
            if self._pending is None:
                self._state = ConnectionState.CONNECTING
                self._pending = asyncio.ensure_future(self._open())
            pending = self._pending

        try:
            # shield: a cancelled waiter must not cancel the attempt other waiters share
            client = await asyncio.shield(pending)
        except Exception:
            async with self._lock:
                if self._pending is pending:
                    self._pending = None
                    self._state = ConnectionState.DISCONNECTED
            raise

        async with self._lock:
            if self._pending is pending:
                self._pending = None
                self._client = client
                self._state = ConnectionState.CONNECTED
            return self._client or client

    async def close(self) -> None:
        """Close the client. Safe to call repeatedly or when never connected."""
        async with self._lock:
            pending, self._pending = self._pending, None
            client, self._client = self._client, None
            self._state = ConnectionState.DISCONNECTED

        if pending is not None and not pending.done():
            pending.cancel()
            try:
                await pending
            except BaseException:
                pass

        if client is not None:
            await client.aclose()
            logger.info("Redis connection closed")
