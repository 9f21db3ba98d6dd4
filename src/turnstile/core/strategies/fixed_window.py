import time
from typing import Callable

import structlog

from turnstile.core.errors import RateLimitCheckError, StoreError
from turnstile.core.quota import TokenLimits
from turnstile.core.storage.base import CounterStore
from turnstile.core.strategies.base import RateLimitConfig, RateLimitStatus, RateLimitType

logger = structlog.get_logger()

# Lifetime of a counter, refreshed by every increment.
WINDOW_TTL = 1.0


class RateLimiter:
    """
    Fixed window counter with a punitive block.

    Each identity gets a counter that lives WINDOW_TTL seconds past its last
    hit. The request that pushes the counter over max_requests is rejected
    and blocks the identity for block_duration seconds; while blocked, checks
    are rejected without touching the counter.

    Because every increment refreshes the counter's expiration, the window
    only resets after an idle gap of at least WINDOW_TTL. Clients sending
    faster than that keep accumulating until they are blocked.
    """

    def __init__(
        self,
        store: CounterStore,
        ip_limit: int,
        token_limit: int,
        block_duration: float,
        clock: Callable[[], float] = time.time,
    ):
        if ip_limit < 1:
            raise ValueError("ip_limit must be >= 1")
        if block_duration < 0:
            raise ValueError("block_duration must be >= 0")
        self.store = store
        self.ip_limit = ip_limit
        self.block_duration = block_duration
        self.token_limits = TokenLimits(token_limit)
        self._clock = clock

    @property
    def default_token_limit(self) -> int:
        return self.token_limits.default_limit

    def set_token_limit(self, token: str, limit: int) -> None:
        self.token_limits.set(token, limit)

    async def check_ip(self, ip: str) -> RateLimitStatus:
        config = RateLimitConfig(
            key=ip,
            type=RateLimitType.IP,
            max_requests=self.ip_limit,
            block_duration=self.block_duration,
        )
        return await self.check_limit(config)

    async def check_token(self, token: str) -> RateLimitStatus:
        config = RateLimitConfig(
            key=token,
            type=RateLimitType.TOKEN,
            max_requests=self.token_limits.get_limit(token),
            block_duration=self.block_duration,
        )
        return await self.check_limit(config)

    async def check_limit(self, config: RateLimitConfig) -> RateLimitStatus:
        """
        Count one request for config.key and decide whether it may proceed.

        Raises:
            RateLimitCheckError: A store call failed. Nothing is rolled back:
                if the block could not be written after the counter moved,
                the counter stays incremented.
        """
        block_key = config.block_key

        try:
            blocked = await self.store.is_blocked(block_key)
        except StoreError as exc:
            raise RateLimitCheckError("is_blocked", block_key) from exc

        if blocked:
            try:
                ttl = await self.store.get_ttl(block_key)
            except StoreError as exc:
                raise RateLimitCheckError("get_ttl", block_key) from exc

            logger.info("rate_limit_blocked", key=block_key, ttl=ttl)
            return RateLimitStatus(
                allowed=False,
                remaining_requests=0,
                blocked_until=self._clock() + ttl,
            )

        count_key = config.count_key
        try:
            count = await self.store.increment(count_key, WINDOW_TTL)
        except StoreError as exc:
            raise RateLimitCheckError("increment", count_key) from exc

        if count > config.max_requests:
            try:
                await self.store.set_block(block_key, config.block_duration)
            except StoreError as exc:
                raise RateLimitCheckError("set_block", block_key) from exc

            logger.info(
                "rate_limit_exceeded",
                key=count_key,
                count=count,
                limit=config.max_requests,
                block_duration=config.block_duration,
            )
            return RateLimitStatus(
                allowed=False,
                remaining_requests=0,
                blocked_until=self._clock() + config.block_duration,
            )

        remaining = max(0, config.max_requests - count)
        logger.debug("rate_limit_allowed", key=count_key, count=count, remaining=remaining)
        return RateLimitStatus(allowed=True, remaining_requests=remaining)
