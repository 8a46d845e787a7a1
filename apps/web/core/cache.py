"""Bounded-lifetime in-memory cache for access tokens."""

import threading
import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

_V = TypeVar("_V")


class TokenCache(Generic[_V]):
    """
    Explicit TTL cache keyed by account.

    Each entry expires after `ttl_seconds`, or earlier if the caller passes a
    shorter lifetime when storing it. Callers invalidate an entry when the
    remote side rejects the cached token.

    Usage:
        cache: TokenCache[POSSession] = TokenCache(ttl_seconds=3000)
        cache.set(account.pk, session, ttl_seconds=expires_in)
        session = cache.get(account.pk)
        cache.invalidate(account.pk)
    """

    def __init__(
        self,
        ttl_seconds: float = 3000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[_V, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> _V | None:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: _V, ttl_seconds: float | None = None) -> None:
        """Store a value; the lifetime never exceeds the cache TTL."""
        lifetime = self.ttl_seconds
        if ttl_seconds is not None:
            lifetime = min(lifetime, ttl_seconds)
        with self._lock:
            self._entries[key] = (value, self._clock() + max(lifetime, 0))

    def invalidate(self, key: Hashable) -> None:
        """Drop a single entry."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
