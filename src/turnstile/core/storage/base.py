"""
Abstract base class for counter stores.

This module defines the contract that the rate limiter relies on. Separating
storage from the policy allows:
- Testing with the in-memory store (no Redis needed)
- Sharing limiter state across processes through Redis
- Falling back to process memory when Redis is unreachable

Every operation is a coroutine. Failures are raised as StoreError subclasses
and are never reported as "count is zero" or "not blocked".
"""

from abc import ABC, abstractmethod


class CounterStore(ABC):
    """
    Key-value store of integer counters and block flags with expiration.

    Available implementations:
    - InMemoryStore: single process, lock-guarded dict with a sweeper thread
    - RedisStore: shared across processes, relies on Redis atomic commands

    Example:
        >>> store = InMemoryStore()
        >>> await store.increment("count:ip:10.0.0.1", ttl=1.0)
        1
        >>> await store.increment("count:ip:10.0.0.1", ttl=1.0)
        2
    """

    @abstractmethod
    async def increment(self, key: str, ttl: float) -> int:
        """
        Atomically bump a counter and refresh its expiration.

        Creates the counter at 1 if it is absent or expired, otherwise adds 1.
        In both cases the expiration becomes ``now + ttl``, so a key that is
        hit more often than every ``ttl`` seconds never resets.

        Args:
            key: The counter key.
            ttl: Seconds until the counter expires.

        Returns:
            The counter value after the increment.
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> int:
        """
        Read a counter without touching it.

        Returns:
            The current count, or 0 if the key is absent or expired.
        """
        pass

    @abstractmethod
    async def set_block(self, key: str, duration: float) -> None:
        """
        Mark a key as blocked for ``duration`` seconds.

        Overwrites any existing value and expiration unconditionally.
        """
        pass

    @abstractmethod
    async def is_blocked(self, key: str) -> bool:
        """Return True iff the key holds an unexpired block flag."""
        pass

    @abstractmethod
    async def get_ttl(self, key: str) -> float:
        """
        Seconds left until the key expires.

        Returns:
            Remaining lifetime, or 0.0 if the key is absent, expired or has
            no expiration.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Release the store's resources.

        Calling close more than once is a no-op.
        """
        pass
