"""
In-process counter store.

This store keeps every counter and block flag in one Python dictionary,
making it:
- Fast: No network calls, no serialization
- Simple: No external dependencies
- Isolated: Each instance is independent

It is the fallback when Redis cannot be reached. Limits are enforced per
process only: running several workers multiplies the effective limit.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable

import structlog

from turnstile.core.errors import StoreClosedError
from turnstile.core.storage.base import CounterStore

logger = structlog.get_logger()

BLOCKED = 1


@dataclass
class _Entry:
    value: int
    expires_at: float


class InMemoryStore(CounterStore):
    """
    In-memory implementation of CounterStore.

    Expiration works two ways:
    - Passive: reads treat an entry past its expiration as absent
    - Active: a background thread deletes expired entries every
      ``sweep_interval`` seconds until the store is closed

    Thread Safety:
        A single lock covers the whole table. Every operation holds it for
        the duration of one dictionary access, so the store is safe to share
        between asyncio tasks and worker threads, and ``increment`` is atomic
        per key.

    Example:
        >>> store = InMemoryStore(sweep_interval=0.5)
        >>> await store.set_block("block:ip:10.0.0.1", duration=300)
        >>> await store.is_blocked("block:ip:10.0.0.1")
        True
        >>> await store.close()
    """

    def __init__(
        self,
        *,
        sweep_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize an empty table and start the sweeper.

        Args:
            sweep_interval: Seconds between two sweeps. Values <= 0 disable
                the sweeper thread; expired entries are then only hidden by
                passive expiry and removed by explicit purge_expired() calls.
            clock: Time source returning UNIX time in seconds.
        """
        self._data: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._closed = False

        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None
        if sweep_interval > 0:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(sweep_interval,),
                name="turnstile-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            removed = self.purge_expired()
            if removed:
                logger.debug("memory_store_swept", removed=removed)

    def _live_entry(self, key: str, now: float) -> _Entry | None:
        """Return the entry for key unless it is missing or expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None or now > entry.expires_at:
            return None
        return entry

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("in-memory store is closed")

    # =========================================================================
    # Counter Operations
    # =========================================================================

    async def increment(self, key: str, ttl: float) -> int:
        """
        Bump a counter, creating it at 1 when absent or expired.

        The expiration is moved to ``now + ttl`` on every call, not only when
        the counter is created.
        """
        with self._lock:
            self._ensure_open()
            now = self._clock()
            entry = self._live_entry(key, now)

            if entry is None:
                self._data[key] = _Entry(value=1, expires_at=now + ttl)
                return 1

            entry.value += 1
            entry.expires_at = now + ttl
            return entry.value

    async def get(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            return entry.value if entry else 0

    # =========================================================================
    # Block Operations
    # =========================================================================

    async def set_block(self, key: str, duration: float) -> None:
        with self._lock:
            self._ensure_open()
            if duration <= 0:
                # matches RedisStore: a zero-length block is simply absent
                self._data.pop(key, None)
                return
            self._data[key] = _Entry(value=BLOCKED, expires_at=self._clock() + duration)

    async def is_blocked(self, key: str) -> bool:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            return entry is not None and entry.value == BLOCKED

    async def get_ttl(self, key: str) -> float:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return 0.0
            return max(0.0, entry.expires_at - now)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """
        Stop the sweeper and drop every entry.

        Reads after close see an empty store; writes raise StoreClosedError.
        """
        if self._closed:
            return

        self._stop.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            await asyncio.to_thread(self._sweeper.join)

        with self._lock:
            self._closed = True
            self._data.clear()

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def purge_expired(self) -> int:
        """
        Delete every expired entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._data.items() if now > entry.expires_at]
            for key in expired:
                del self._data[key]
            return len(expired)

    @property
    def sweeper_alive(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def __len__(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        with self._lock:
            return len(self._data)
