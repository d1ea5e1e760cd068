"""
Bounded time-to-live cache.

Used by callers of the reconciliation pipeline (the geocoder, the CLI) to avoid
repeating expensive upstream lookups. The cache is an explicit object owned by
whoever constructs it; nothing in this project keeps module-level cache state.

Entries expire ``ttl_seconds`` after insertion. When the cache is full, the
oldest inserted entry is evicted.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any


class TTLCache:
    """Size-bounded mapping with per-entry expiry and oldest-insertion eviction."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Lifetime of an entry, measured from insertion
            max_entries: Maximum number of live entries before eviction
            clock: Time source, injectable for tests
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return default

            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return default

            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            # Re-inserting moves the key to the newest position
            if key in self._entries:
                del self._entries[key]

            self._purge_expired()
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)

            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key``, computing and storing it on a miss.

        ``None`` results from the factory are not cached so that transient
        upstream failures are retried on the next call.
        """
        sentinel = object()
        value = self.get(key, sentinel)
        if value is not sentinel:
            return value

        value = factory()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel
