"""Expiring key-value store with per-entry TTL.

Expiry is enforced lazily on every access and by an optional periodic
sweep, so a `get` never returns an expired value even if the sweep has
not run yet.

Usage:
    store = ExpiringStore(default_ttl=600)
    store.put("chat_42", state)
    store.get("chat_42")            # -> state, or None once 600s pass
    task = asyncio.create_task(store.run_sweeper(60))
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger("wabridge.cache")

_MISSING = object()


class ExpiringStore:
    """Mapping with per-entry time-to-live.

    Keys keep insertion order; re-putting a key moves it to the end.
    A single lock guards the dict, held only for O(1) work per call
    (keys() and sweep() are O(n) but never await).
    """

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.monotonic):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (expires_at, value)
        self._data: dict[Any, tuple[float, Any]] = {}

    def put(self, key, value, ttl: Optional[float] = None):
        """Store value under key, replacing any existing entry and its expiry."""
        ttl = self.default_ttl if ttl is None else ttl
        expires_at = self._clock() + ttl
        with self._lock:
            self._data.pop(key, None)
            self._data[key] = (expires_at, value)

    def get(self, key, default=None):
        """Return the live value for key, or default if absent/expired."""
        now = self._clock()
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return default
            expires_at, value = item
            if expires_at <= now:
                del self._data[key]
                return default
            return value

    def pop(self, key, default=None):
        """Atomically remove key and return its live value (or default)."""
        now = self._clock()
        with self._lock:
            item = self._data.pop(key, None)
        if item is None or item[0] <= now:
            return default
        return item[1]

    def delete(self, key) -> bool:
        """Remove key. Returns True if a live entry was removed."""
        return self.pop(key, _MISSING) is not _MISSING

    def keys(self) -> list:
        """Live keys in insertion order."""
        now = self._clock()
        with self._lock:
            return [k for k, (exp, _) in self._data.items() if exp > now]

    def __contains__(self, key) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self.keys())

    def sweep(self) -> int:
        """Purge every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (exp, _) in self._data.items() if exp <= now]
            for k in expired:
                del self._data[k]
        return len(expired)

    def clear(self):
        with self._lock:
            self._data.clear()

    async def run_sweeper(self, interval: float = 60.0):
        """Sweep expired entries every `interval` seconds until cancelled."""
        try:
            while True:
                await asyncio.sleep(interval)
                removed = self.sweep()
                if removed:
                    logger.debug(f"Swept {removed} expired entr{'y' if removed == 1 else 'ies'}")
        except asyncio.CancelledError:
            pass
