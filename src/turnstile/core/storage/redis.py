import asyncio
from typing import Any, Awaitable

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from turnstile.core.errors import (
    StoreClosedError,
    StoreConnectionError,
    StoreError,
    StoreUnavailableError,
)
from turnstile.core.storage.base import CounterStore

logger = structlog.get_logger()

BLOCKED = "1"


def _millis(seconds: float) -> int:
    return int(seconds * 1000)


class RedisStore(CounterStore):
    """
    CounterStore backed by Redis, shared by every process that points at it.
    Use RedisStore.connect() to get an instance whose connection was verified.
    """

    def __init__(self, redis: Redis):
        self._redis = redis
        self._closed = False

    @classmethod
    async def connect(cls, url: str, timeout: float = 5.0) -> "RedisStore":
        """
        Build a client for ``url`` and ping it within ``timeout`` seconds.

        Raises:
            StoreConnectionError: Redis did not answer the ping.
        """
        redis = from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        try:
            await asyncio.wait_for(redis.ping(), timeout=timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await redis.aclose()
            raise StoreConnectionError(f"failed to connect to redis: {exc}") from exc

        logger.info("redis_store_connected")
        return cls(redis)

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailableError(f"redis unavailable during {operation}: {exc}") from exc
        except RedisError as exc:
            raise StoreError(f"redis {operation} failed: {exc}") from exc

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("redis store is closed")

    async def increment(self, key: str, ttl: float) -> int:
        self._ensure_open()

        # INCR and PEXPIRE go out in one MULTI/EXEC round trip
        async def bump() -> int:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.pexpire(key, _millis(ttl))
                count, _ = await pipe.execute()
            return int(count)

        return await self._call("increment", bump())

    async def get(self, key: str) -> int:
        self._ensure_open()
        val = await self._call("get", self._redis.get(key))
        return int(val) if val is not None else 0

    async def set_block(self, key: str, duration: float) -> None:
        self._ensure_open()
        ms = _millis(duration)
        if ms <= 0:
            # Redis rejects a zero expiry; an already expired block is simply absent
            await self._call("set_block", self._redis.delete(key))
            return
        await self._call("set_block", self._redis.set(key, BLOCKED, px=ms))

    async def is_blocked(self, key: str) -> bool:
        self._ensure_open()
        val = await self._call("is_blocked", self._redis.get(key))
        return val == BLOCKED

    async def get_ttl(self, key: str) -> float:
        self._ensure_open()
        ms = await self._call("get_ttl", self._redis.pttl(key))
        # -2: key missing, -1: no expiry
        if ms is None or ms < 0:
            return 0.0
        return ms / 1000

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._redis.aclose()
