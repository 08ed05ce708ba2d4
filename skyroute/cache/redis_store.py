"""Redis-backed response cache; entries are JSON envelopes stored with SETEX."""

import json
import math
import threading
import time
from typing import Any, Optional

from skyroute.cache.base import CacheStats, CacheStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/redis_cache_store")


class RedisCacheStore(CacheStore):
    """Shared cache for multi-process deployments.

    Size is bounded by the server's `maxmemory` policy rather than here;
    expiry is Redis' own TTL.
    """

    def __init__(self, client, prefix: str = "skyroute:", clock=time.time) -> None:
        logger.debug("Initializing RedisCacheStore", extra={"prefix": prefix})
        self.client = client
        self.prefix = prefix
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._errors = 0

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _count(self, field: str) -> None:
        with self._lock:
            setattr(self, field, getattr(self, field) + 1)

    def _safe_dump(self, value: Any, ttl_seconds: float) -> Optional[str]:
        try:
            return json.dumps({"value": value, "created_at": self._clock(), "ttl_seconds": ttl_seconds})
        except (TypeError, ValueError) as exc:
            logger.error("Failed to serialize cache value", extra={"error": str(exc)})
            return None

    def _safe_load(self, raw) -> Optional[dict]:
        """Decode an envelope; None when the stored bytes are unreadable."""
        try:
            text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
            data = json.loads(text)
        except (UnicodeDecodeError, TypeError, ValueError) as exc:
            logger.error("Failed to deserialize cache entry", extra={"error": str(exc)})
            return None
        if not isinstance(data, dict) or "value" not in data:
            logger.error("Cache entry has no value field")
            return None
        return data

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except Exception as exc:
            logger.error("Failed to read cache entry from Redis", extra={"key": key, "error": str(exc)})
            self._count("_errors")
            self._count("_misses")
            return None
        if not raw:
            self._count("_misses")
            return None
        data = self._safe_load(raw)
        if data is None:
            self._count("_errors")
            self._count("_misses")
            self.delete(key)
            return None
        self._count("_hits")
        return data["value"]

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            logger.warning("Skipping cache write with non-positive TTL", extra={"key": key, "ttl_seconds": ttl_seconds})
            return
        payload = self._safe_dump(value, ttl_seconds)
        if payload is None:
            self._count("_errors")
            return
        try:
            self.client.setex(self._key(key), int(math.ceil(ttl_seconds)), payload)
        except Exception as exc:
            logger.error("Failed to write cache entry to Redis", extra={"key": key, "error": str(exc)})
            self._count("_errors")

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except Exception as exc:
            logger.error("Failed to delete cache entry from Redis", extra={"key": key, "error": str(exc)})

    def clear(self) -> None:
        """Best-effort clear of every key under the configured prefix."""
        try:
            for key in self.client.scan_iter(f"{self.prefix}*"):
                self.client.delete(key)
        except Exception as exc:
            logger.error("Failed to clear cache in Redis", extra={"error": str(exc)})

    def stats(self) -> CacheStats:
        size = 0
        try:
            size = sum(1 for _ in self.client.scan_iter(f"{self.prefix}*"))
        except Exception as exc:
            logger.warning("Failed to count cache keys in Redis", extra={"error": str(exc)})
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, errors=self._errors, size=size)
