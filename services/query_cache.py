"""Bounded TTL cache for expensive read queries.

Entries expire `ttl` seconds after they were stored. Beyond `max_size` the
earliest-inserted entry is dropped; reads never refresh an entry.

Instances are created explicitly and handed to the code that needs them, so
tests can pass their own clock. `default_query_cache()` builds the shared one
used by the CLI from QUERY_CACHE_TTL / QUERY_CACHE_MAX_SIZE.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Hashable, Optional

from cachetools import FIFOCache
from flask import current_app, has_app_context

_LOG = logging.getLogger(__name__)

DEFAULT_TTL = 60
DEFAULT_MAX_SIZE = 100

_MISSING = object()


class QueryCache:
    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        # key -> (value, inserted_at)
        self._cache: FIFOCache = FIFOCache(maxsize=max_size)
        self._lock = threading.RLock()

    @staticmethod
    def make_key(**parts: Any) -> str:
        return json.dumps(parts, sort_keys=True, separators=(",", ":"), default=str)

    def _expired(self, inserted_at: float, now: float) -> bool:
        return now - inserted_at > self.ttl

    def _purge(self) -> int:
        now = self._clock()
        stale = [key for key, (_, inserted_at) in self._cache.items() if self._expired(inserted_at, now)]
        for key in stale:
            del self._cache[key]
        return len(stale)

    def _lookup(self, key: Hashable) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return _MISSING
        value, inserted_at = entry
        if self._expired(inserted_at, self._clock()):
            del self._cache[key]
            return _MISSING
        return value

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache.pop(key, None)
            if len(self._cache) >= self.max_size:
                self._purge()
            self._cache[key] = (value, self._clock())

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        with self._lock:
            value = self._lookup(key)
        if value is not _MISSING:
            _LOG.debug("Query cache hit for %s", key)
            return value
        value = factory()
        self.set(key, value)
        _LOG.debug("Cached query result for %s (size %s)", key, len(self))
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def cleanup(self) -> dict:
        """Drop expired entries; returns {"expired": n, "remaining": m}."""
        with self._lock:
            expired = self._purge()
            remaining = len(self._cache)
        _LOG.info("Query cache cleanup: %s expired, %s remaining", expired, remaining)
        return {"expired": expired, "remaining": remaining}

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return self._lookup(key) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._cache)


_default_cache: Optional[QueryCache] = None
_default_lock = threading.Lock()


def default_query_cache() -> QueryCache:
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            ttl, max_size = DEFAULT_TTL, DEFAULT_MAX_SIZE
            if has_app_context():
                ttl = current_app.config.get("QUERY_CACHE_TTL", DEFAULT_TTL)
                max_size = current_app.config.get("QUERY_CACHE_MAX_SIZE", DEFAULT_MAX_SIZE)
            _default_cache = QueryCache(ttl=ttl, max_size=max_size)
        return _default_cache


__all__ = ["DEFAULT_MAX_SIZE", "DEFAULT_TTL", "QueryCache", "default_query_cache"]
