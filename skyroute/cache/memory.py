"""Bounded in-memory TTL cache, the default backend for single-process deployments."""

import copy
import threading
import time
from typing import Any, Callable, Dict, Optional

from skyroute.cache.base import CacheEntry, CacheStats, CacheStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/in_memory_cache_store")


class InMemoryCacheStore(CacheStore):
    """Thread-safe, TTL-aware, size-bounded cache.

    Values are deep-copied on the way in and on the way out. When a new key
    arrives at `max_entries`, expired entries are swept first; if the store is
    still at or above `cleanup_threshold`, the oldest entries are evicted until
    it drops below it.
    """

    def __init__(
        self,
        max_entries: int = 10000,
        cleanup_threshold: int = 8000,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if not 0 < cleanup_threshold <= max_entries:
            raise ValueError("cleanup_threshold must be in (0, max_entries]")
        logger.debug(
            "Initializing InMemoryCacheStore",
            extra={"max_entries": max_entries, "cleanup_threshold": cleanup_threshold},
        )
        self.max_entries = max_entries
        self.cleanup_threshold = cleanup_threshold
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._errors = 0
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if not isinstance(entry, CacheEntry):
                self._purge_corrupted(key, "not a cache entry")
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None
            try:
                value = copy.deepcopy(entry.value)
            except Exception as exc:
                self._purge_corrupted(key, str(exc))
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            logger.warning("Skipping cache write with non-positive TTL", extra={"key": key, "ttl_seconds": ttl_seconds})
            return
        try:
            stored = copy.deepcopy(value)
        except Exception as exc:
            logger.error("Value is not copyable; skipping cache write", extra={"key": key, "error": str(exc)})
            with self._lock:
                self._errors += 1
            return
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._sweep_locked(now)
                if len(self._entries) >= self.cleanup_threshold:
                    self._evict_oldest_locked()
            self._entries[key] = CacheEntry(value=stored, created_at=now, ttl_seconds=ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep_expired(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                errors=self._errors,
                size=len(self._entries),
                max_size=self.max_entries,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start_background_sweep(self) -> None:
        """Start a daemon thread that sweeps every `sweep_interval_seconds`."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="cache-sweeper", daemon=True)
        self._sweeper.start()
        logger.info("Started cache sweeper", extra={"interval_seconds": self.sweep_interval_seconds})

    def stop_background_sweep(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=timeout)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval_seconds):
            removed = self.sweep_expired()
            if removed:
                logger.debug("Swept expired cache entries", extra={"removed": removed})

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _sweep_locked(self, now: float) -> int:
        expired = [
            key for key, entry in self._entries.items()
            if not isinstance(entry, CacheEntry) or entry.is_expired(now)
        ]
        for key in expired:
            del self._entries[key]
        self._expirations += len(expired)
        return len(expired)

    def _evict_oldest_locked(self) -> None:
        oldest_first = sorted(self._entries.items(), key=lambda item: item[1].created_at)
        excess = len(self._entries) - self.cleanup_threshold + 1
        for key, _ in oldest_first[:excess]:
            del self._entries[key]
        self._evictions += max(excess, 0)
        logger.info(
            "Evicted oldest cache entries",
            extra={"evicted": excess, "size": len(self._entries)},
        )

    def _purge_corrupted(self, key: str, reason: str) -> None:
        self._entries.pop(key, None)
        self._errors += 1
        self._misses += 1
        logger.error("Purged corrupted cache entry", extra={"key": key, "reason": reason})
