"""Small TTL + capacity cache shared by network-backed tools."""

import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Hashable, Optional


@dataclass
class _CacheEntry:
    value: Any
    created_at: float


class TTLCache:
    """In-memory cache with a time-to-live and a maximum entry count.

    Construct one per process and pass it to whatever needs it. Expired
    entries are purged on every write; when the cache is full the oldest
    entries are evicted first.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = 300.0,
        max_entries: int = 128,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = None if ttl_seconds is None else max(0.0, float(ttl_seconds))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._entries: dict[Hashable, _CacheEntry] = {}
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expired(self, entry: _CacheEntry, now: float) -> bool:
        return self._ttl is not None and now - entry.created_at >= self._ttl

    def get(self, key: Hashable, default: Any = None) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if self._expired(entry, now):
                del self._entries[key]
                return default
            return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        now = self._clock()
        with self._lock:
            self._purge_expired_locked(now)
            self._entries.pop(key, None)
            self._entries[key] = _CacheEntry(value=value, created_at=now)
            self._enforce_capacity_locked()

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        """Return the cached value, computing and storing it on a miss."""
        missing = object()
        value = self.get(key, missing)
        if value is missing:
            value = factory()
            self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired_locked(self, now: float) -> None:
        if self._ttl is None:
            return
        stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in stale:
            del self._entries[key]

    def _enforce_capacity_locked(self) -> None:
        surplus = len(self._entries) - self._max_entries
        if surplus <= 0:
            return
        # dicts keep insertion order, and set() re-inserts, so oldest come first
        for key in list(self._entries)[:surplus]:
            del self._entries[key]
