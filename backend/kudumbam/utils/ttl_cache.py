"""
Kudumbam — TTL Cache
Small in-memory cache with a fixed time-to-live and explicit invalidation.
Constructed by its owner and passed in, never a module global.
"""

import time
from typing import Any, Callable, Hashable, Optional


_MISSING = object()


class TTLCache:
    """{key: (value, expires_at)} with a monotonic clock (injectable for tests)."""

    def __init__(self, ttl_seconds: float, clock: Optional[Callable[[], float]] = None):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._store: dict[Hashable, tuple[Any, float]] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return default
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._store[key] = (value, self._clock() + self.ttl_seconds)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or everything when no key is given."""
        if key is None:
            self._store.clear()
        else:
            self._store.pop(key, None)

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._store.values() if now < expires_at)
