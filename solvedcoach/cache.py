"""
In-Memory Cache Module for solvedcoach.

Thread-safe TTL cache used by the catalog client for slowly changing data
(user profiles, problem lookups, the tag population list).
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple
from dataclasses import dataclass
import logging

from .config import CACHE_TTL_SECONDS, CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Single cache entry with data and expiry time."""
    data: Any
    expires_at: float


class TTLCache:
    """
    Thread-safe in-memory cache with per-entry TTL.

    Entries expire lazily on read. When full, the least recently read
    entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self._entries: Dict[str, CacheEntry] = {}
        self._last_read: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock

    def get(self, key: str) -> Tuple[Optional[Any], bool]:
        """
        Look up a key.

        Returns:
            Tuple of (data, hit). Missing or expired keys return (None, False).
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False

            now = self._clock()
            if now > entry.expires_at:
                logger.debug(f"Cache EXPIRED: {key}")
                self._drop(key)
                return None, False

            self._last_read[key] = now
            return entry.data, True

    def set(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        """Store data under key, with an optional custom TTL in seconds."""
        ttl_seconds = ttl if ttl is not None else self._ttl
        now = self._clock()

        with self._lock:
            if len(self._entries) >= self._max_entries and key not in self._entries:
                self._evict_oldest()

            self._entries[key] = CacheEntry(data=data, expires_at=now + ttl_seconds)
            self._last_read[key] = now

    def invalidate(self, key: str) -> bool:
        with self._lock:
            if key in self._entries:
                self._drop(key)
                return True
            return False

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._last_read.clear()
            if count:
                logger.info(f"Cache CLEARED: {count} entries removed")
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _drop(self, key: str) -> None:
        self._entries.pop(key, None)
        self._last_read.pop(key, None)

    def _evict_oldest(self) -> None:
        if not self._last_read:
            return
        oldest_key = min(self._last_read, key=self._last_read.get)
        self._drop(oldest_key)
        logger.debug(f"Cache EVICTED: {oldest_key}")
