import threading


class TokenLimits:
    """
    Per-token request limits that override the default token limit.

    The table is written at runtime and read by every token check, so all
    access goes through a lock. An update is visible to every check that
    starts after it; checks already running keep the limit they resolved.
    """

    def __init__(self, default_limit: int, overrides: dict[str, int] | None = None) -> None:
        if default_limit < 1:
            raise ValueError("default_limit must be >= 1")
        self.default_limit = default_limit
        self._lock = threading.Lock()
        self._overrides: dict[str, int] = {}
        for token, limit in (overrides or {}).items():
            self.set(token, limit)

    def set(self, token: str, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        with self._lock:
            self._overrides[token] = limit

    def get_limit(self, token: str) -> int:
        """Override for ``token`` if one is set, else the default limit."""
        with self._lock:
            return self._overrides.get(token, self.default_limit)

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._overrides

    def __len__(self) -> int:
        with self._lock:
            return len(self._overrides)
