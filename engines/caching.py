"""Bounded in-memory caches keyed by learner, item or tier identifiers."""

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Hashable, Optional, Tuple


class TTLCache:
    """Thread-safe LRU cache with a size limit and per-entry expiry.

    Entries expire ``ttl_seconds`` after they were written. When the cache is
    full the least recently used entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._max_entries = int(max_entries)
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._lock = Lock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        """Return the cached value, dropping it first if it has expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return value

    def set(self, key: Hashable, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._ttl if ttl_seconds is None else float(ttl_seconds)
        with self._lock:
            now = self._clock()
            if key in self._entries:
                self._entries.move_to_end(key)
            else:
                self._purge_expired(now)
                while len(self._entries) >= self._max_entries:
                    # Evict least recently used
                    self._entries.popitem(last=False)
            self._entries[key] = (now + ttl, value)

    def pop(self, key: Hashable, default: Optional[Any] = None) -> Any:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None or entry[0] <= self._clock():
                return default
            return entry[1]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
