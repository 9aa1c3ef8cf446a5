"""In-memory cache for parsed configs and dataset indexes."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


class KeyedCache:
    """Process-lifetime store keyed by config path.

    No TTL and no size bound; entries leave only through ``invalidate``.
    Safe for concurrent use from request threads.
    """

    def __init__(self, name: str = "cache"):
        self.name = name
        self._entries: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._build_locks: Dict[str, threading.Lock] = {}
        # Bumped by invalidate so builds started before a clear are not stored
        self._generations: Dict[str, int] = {}
        self._epoch = 0

    def _key(self, key: Any) -> str:
        return str(key)

    def get(self, key: Any) -> Optional[Any]:
        with self._lock:
            return self._entries.get(self._key(key))

    def put(self, key: Any, value: Any) -> None:
        with self._lock:
            self._entries[self._key(key)] = value

    def invalidate(self, key: Optional[Any] = None) -> None:
        """Drop one entry, or everything when ``key`` is omitted."""
        with self._lock:
            if key is None:
                self._entries.clear()
                self._build_locks.clear()
                self._epoch += 1
                logger.info(f"{self.name}: cleared all entries")
            else:
                k = self._key(key)
                self._entries.pop(k, None)
                self._build_locks.pop(k, None)
                self._generations[k] = self._generations.get(k, 0) + 1
                logger.info(f"{self.name}: cleared {key}")

    def get_or_build(self, key: Any, builder: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key``, building it on a miss.

        Concurrent misses on the same key wait for a single build. The
        global lock is never held while ``builder`` runs. A value whose
        build overlapped an ``invalidate`` is returned but not stored.

        Args:
            key: Cache key (config path)
            builder: Zero-argument callable producing the value

        Returns:
            Cached or freshly built value
        """
        k = self._key(key)
        with self._lock:
            value = self._entries.get(k, _MISSING)
            if value is not _MISSING:
                return value
            build_lock = self._build_locks.setdefault(k, threading.Lock())

        with build_lock:
            with self._lock:
                value = self._entries.get(k, _MISSING)
                stamp = (self._epoch, self._generations.get(k, 0))
            if value is not _MISSING:
                return value

            logger.debug(f"{self.name}: building entry for {k}")
            value = builder()

            with self._lock:
                if stamp == (self._epoch, self._generations.get(k, 0)):
                    self._entries[k] = value
                else:
                    logger.info(f"{self.name}: {k} was cleared during build, not caching")
            return value

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return self._key(key) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
