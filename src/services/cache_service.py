"""
In-process TTL cache for Google Sheets reads.

This module provides a keyed cache with a per-entry time-to-live, lazy expiry
on read, insertion-order eviction, pattern invalidation and a background
sweep that removes expired entries nobody reads again.
"""

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Pattern, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()

# Default TTLs per data class (seconds)
DEFAULT_TTLS: Dict[str, float] = {
    "naps_all": 10 * 60.0,
    "nap_single": 5 * 60.0,
    "naps_pending": 2 * 60.0,
    "health_status": 30.0,
}


class CacheKeys:
    """Cache keys for the different kinds of cached data."""

    ALL_NAPS = "naps:all"
    PENDING_NAPS = "naps:pending"
    HEALTH_STATUS = "health:status"
    SINGLE_NAP_PATTERN = r"^nap:"

    @staticmethod
    def nap_by_id(nap_id: str) -> str:
        return f"nap:{nap_id}"

    @staticmethod
    def user_naps(user_id: str) -> str:
        return f"naps:user:{user_id}"


@dataclass
class CacheEntry:
    """A cached value with its insertion time and time-to-live."""

    key: str
    data: Any
    stored_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl


class CacheService:
    """
    Thread-safe in-memory cache with per-entry TTL.

    Features:
    - Independent TTL per entry, with a default policy per data class
    - Lazy expiry: an entry is valid while its age is at most its TTL,
      re-checked on every read
    - Insertion-order eviction once ``max_size`` entries are stored
    - Regex-based invalidation for cascading updates
    - Hit/miss statistics
    - Optional background sweep of expired entries

    Values are stored by reference. Callers must treat returned objects as
    read-only.

    Example:
        >>> cache = CacheService(max_size=100)
        >>> cache.set(CacheKeys.nap_by_id("NAP_1"), {"id": "NAP_1"}, ttl=60)
        >>> cache.get("nap:NAP_1")
        {'id': 'NAP_1'}
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_policy: Optional[Dict[str, float]] = None,
        default_ttl: Optional[float] = None,
        cleanup_interval: float = 5 * 60.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries kept in memory
            ttl_policy: TTL per data class, merged over ``DEFAULT_TTLS``
            default_ttl: TTL used by ``set`` when none is given
                (defaults to the ``naps_all`` policy value)
            cleanup_interval: Interval of the background sweep (seconds)
            clock: Time source returning seconds

        Raises:
            ValueError: If max_size or a TTL is not positive
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self.max_size = max_size
        self.ttl_policy = {**DEFAULT_TTLS, **(ttl_policy or {})}
        self.default_ttl = (
            default_ttl if default_ttl is not None else self.ttl_policy["naps_all"]
        )
        self.cleanup_interval = cleanup_interval
        self._clock = clock

        for name, ttl in self.ttl_policy.items():
            if ttl <= 0:
                raise ValueError(f"TTL for {name} must be positive, got {ttl}")
        if self.default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {self.default_ttl}")

        # dict keeps insertion order; overwriting a key keeps its position
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}

        self._cleanup_thread: Optional[threading.Thread] = None
        self._cleanup_stop: Optional[threading.Event] = None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value under ``key``.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds (defaults to ``default_ttl``)

        Raises:
            ValueError: If ttl is not positive
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest_key = next(iter(self._entries))
                del self._entries[oldest_key]
                logger.debug(f"Evicted cache entry (oldest inserted): {oldest_key}")

            self._entries[key] = CacheEntry(
                key=key, data=value, stored_at=self._clock(), ttl=ttl
            )
            self._stats["sets"] += 1

        logger.debug(f"Cache SET: {key} (ttl={ttl}s)")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Return the value for ``key`` if present and not expired.

        An expired entry is removed as a side effect and counts as a miss.

        Args:
            key: Cache key
            default: Value returned on a miss

        Returns:
            Cached value or ``default``
        """
        value = self._lookup(key)
        return default if value is _MISSING else value

    def _lookup(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self._stats["misses"] += 1
                logger.debug(f"Cache MISS: {key}")
                return _MISSING

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats["deletes"] += 1
                self._stats["misses"] += 1
                logger.debug(f"Cache EXPIRED: {key}")
                return _MISSING

            self._stats["hits"] += 1
            logger.debug(f"Cache HIT: {key}")
            return entry.data

    def delete(self, key: str) -> bool:
        """
        Remove ``key`` from the cache.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            if key not in self._entries:
                return False
            del self._entries[key]
            self._stats["deletes"] += 1

        logger.debug(f"Cache DELETE: {key}")
        return True

    def clear(self) -> int:
        """
        Remove all entries.

        Returns:
            Number of removed entries
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._stats["deletes"] += count

        logger.info(f"Cache cleared ({count} entries)")
        return count

    def clear_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of removed entries
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats["deletes"] += len(expired)

        if expired:
            logger.info(f"Cleared {len(expired)} expired cache entries")
        return len(expired)

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """
        Remove every entry whose key matches ``pattern`` (``re.search``).

        Args:
            pattern: Regular expression string or compiled pattern

        Returns:
            Number of removed entries
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern

        with self._lock:
            matching = [key for key in self._entries if regex.search(key)]
            for key in matching:
                del self._entries[key]
            self._stats["deletes"] += len(matching)

        if matching:
            logger.info(
                f"Invalidated {len(matching)} cache entries matching "
                f"pattern: {regex.pattern}"
            )
        return len(matching)

    def cached(
        self, key: str, producer: Callable[[], T], ttl: Optional[float] = None
    ) -> T:
        """
        Return the cached value for ``key`` or compute and store it.

        The producer runs outside the cache lock, so two threads missing the
        same key at once may both call it; the last write wins. If the
        producer raises, nothing is stored and the exception propagates.

        Args:
            key: Cache key
            producer: Zero-argument callable computing the value
            ttl: Time-to-live in seconds for a freshly computed value

        Returns:
            Cached or freshly computed value
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        try:
            value = producer()
        except Exception as e:
            logger.error(f"Error fetching data for cache key {key}: {e}")
            raise

        self.set(key, value, ttl)
        return value

    def get_ttl(self, data_class: str) -> float:
        """
        Get the TTL configured for a data class.

        Raises:
            ValueError: If the data class is unknown
        """
        try:
            return self.ttl_policy[data_class]
        except KeyError:
            raise ValueError(
                f"Unknown cache data class: {data_class}. "
                f"Must be one of {', '.join(sorted(self.ttl_policy))}"
            ) from None

    def get_entry_info(self, key: str) -> Dict[str, Any]:
        """Describe an entry without affecting statistics or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return {"exists": False}
            now = self._clock()
            return {
                "exists": True,
                "age": entry.age(now),
                "ttl": entry.ttl,
                "expired": entry.is_expired(now),
            }

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with hits, misses, sets, deletes, size and hit_rate
            (percentage of reads served from cache, rounded to 2 decimals)
        """
        with self._lock:
            reads = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / reads * 100) if reads > 0 else 0.0
            return {
                **self._stats,
                "size": len(self._entries),
                "hit_rate": round(hit_rate, 2),
            }

    def reset_statistics(self):
        """Reset hit/miss/set/delete counters."""
        with self._lock:
            self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def start_periodic_cleanup(
        self, interval: Optional[float] = None
    ) -> threading.Thread:
        """
        Start a daemon thread that calls ``clear_expired`` periodically.

        Calling this while a sweep is already running returns that thread.

        Args:
            interval: Sweep interval in seconds (defaults to cleanup_interval)

        Returns:
            The sweep thread
        """
        interval = interval if interval is not None else self.cleanup_interval
        if interval <= 0:
            raise ValueError(f"Cleanup interval must be positive, got {interval}")

        with self._lock:
            if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
                return self._cleanup_thread

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._cleanup_loop,
                args=(interval, stop_event),
                name="cache-cleanup",
                daemon=True,
            )
            self._cleanup_stop = stop_event
            self._cleanup_thread = thread

        thread.start()
        logger.info(f"Started cache cleanup with {interval}s interval")
        return thread

    def stop_periodic_cleanup(self, timeout: Optional[float] = 5.0):
        """Stop the background sweep, if running."""
        with self._lock:
            thread, stop_event = self._cleanup_thread, self._cleanup_stop
            self._cleanup_thread = None
            self._cleanup_stop = None

        if thread is None or stop_event is None:
            return

        stop_event.set()
        thread.join(timeout)
        logger.info("Stopped cache cleanup")

    def _cleanup_loop(self, interval: float, stop_event: threading.Event):
        while not stop_event.wait(interval):
            self.clear_expired()
