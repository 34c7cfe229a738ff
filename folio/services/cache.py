# folio/services/cache.py
"""
In-process cache for computed results.

Thread-safe bounded LRU cache with a per-entry TTL. It satisfies
CacheProtocol and is handed to the services that need it through their
constructors (see dependencies.py); nothing here is a module-level global.

Keys are namespaced with a configurable prefix so several caches (or a
future shared store) can coexist. For multi-worker deployments a shared
store such as Redis would replace this class behind the same protocol.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

from folio.services.constants import DEFAULT_CACHE_MAX_SIZE, DEFAULT_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class InMemoryCache:
    """
    Bounded LRU cache with TTL.

    When the cache is full, the least recently used entry is evicted to
    make room for new entries. Expired entries are dropped lazily on read
    and eagerly when a write needs room.
    """

    def __init__(
            self,
            namespace: str = "folio:cache:",
            max_size: int = DEFAULT_CACHE_MAX_SIZE,
            default_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
            clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self._namespace = namespace
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str) -> Any | None:
        """
        Return the cached value or None on a miss.

        Implements LRU by moving accessed entries to the end.
        """
        full_key = self._key(key)

        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                self._misses += 1
                return None

            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[full_key]
                self._misses += 1
                logger.debug(f"Cache expired for {full_key}")
                return None

            self._entries.move_to_end(full_key)
            self._hits += 1

        logger.debug(f"Cache hit for {full_key}")
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a value, evicting expired then least recently used entries if full."""
        full_key = self._key(key)
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        now = self._clock()

        with self._lock:
            self._entries.pop(full_key, None)

            if len(self._entries) >= self._max_size:
                self._purge_expired(now)
            while len(self._entries) >= self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted {evicted} (LRU)")

            self._entries[full_key] = (now + ttl, value)

        logger.debug(f"Cached {full_key} for {ttl}s")

    def invalidate_prefix(self, prefix: str) -> int:
        """
        Drop every entry whose key starts with prefix.

        Returns:
            Number of entries removed
        """
        full_prefix = self._key(prefix)
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(full_prefix)]
            for key in doomed:
                del self._entries[key]

        if doomed:
            logger.info(f"Invalidated {len(doomed)} cache entries with prefix {full_prefix}")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
            }

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
