"""
Value types shared by the rate limiter and its callers.
"""

from dataclasses import dataclass
from enum import StrEnum


class RateLimitType(StrEnum):
    """
    Kind of identity being limited. The value is part of every store key.

    IP: client network address.
    TOKEN: API token sent by the client.
    """

    IP = "ip"
    TOKEN = "token"


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Parameters of a single check, built per call and never persisted.

    Attributes:
        key: The identity (IP address or token).
        type: Whether key is an IP or a token.
        max_requests: Requests allowed before the identity gets blocked.
        block_duration: Seconds the identity stays blocked.
    """

    key: str
    type: RateLimitType
    max_requests: int
    block_duration: float

    @property
    def count_key(self) -> str:
        return f"count:{self.type}:{self.key}"

    @property
    def block_key(self) -> str:
        return f"block:{self.type}:{self.key}"


@dataclass(frozen=True)
class RateLimitStatus:
    """
    Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining_requests: Requests left before a block (0 when denied).
        blocked_until: Unix timestamp when the block lifts (only if denied).

    Example headers this maps to:
        X-RateLimit-Remaining: {remaining_requests}
        Retry-After: {blocked_until - now}  (only on 429 responses)
    """

    allowed: bool
    remaining_requests: int
    blocked_until: float | None = None
