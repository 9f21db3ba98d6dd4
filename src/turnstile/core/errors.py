"""
Exception types raised by the storage layer and the rate limiter.

Storage errors are never encoded as zero values: a store that cannot answer
raises, and the limiter wraps the failure with the step that was running.
Whether a failed check lets the request through is decided by the HTTP layer.
"""


class StoreError(Exception):
    """Base class for every counter store failure."""


class StoreUnavailableError(StoreError):
    """The backing medium could not be reached or the call timed out."""


class StoreClosedError(StoreError):
    """An operation was attempted after the store was closed."""


class StoreConnectionError(StoreError):
    """
    The store failed its liveness check while being constructed.

    The bootstrap treats this as a signal to fall back to the in-process
    store rather than as a fatal error.
    """


class RateLimitCheckError(Exception):
    """
    A rate limit check was aborted by a storage failure.

    Attributes:
        step: Which store call failed ("is_blocked", "get_ttl",
              "increment" or "set_block").
        key: The store key involved in the failed call.

    The original StoreError is available as ``__cause__``.
    """

    def __init__(self, step: str, key: str) -> None:
        super().__init__(f"rate limit check failed at {step} for {key!r}")
        self.step = step
        self.key = key
