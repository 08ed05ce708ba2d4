"""Shared protocol and records for response cache backends."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass
class CacheEntry:
    """A cached value and the moment it was stored (store clock, seconds)."""
    value: Any
    created_at: float
    ttl_seconds: float

    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at()


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    errors: int = 0
    size: int = 0
    max_size: Optional[int] = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total, 4) if total else 0.0

    @property
    def usage(self) -> float:
        """Percentage of `max_size` in use (0 when unbounded)."""
        if not self.max_size:
            return 0.0
        return round(100.0 * self.size / self.max_size, 2)

    def as_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "errors": self.errors,
            "size": self.size,
            "max_size": self.max_size,
            "usage": self.usage,
        }


class CacheStore(Protocol):
    """Protocol for response cache backends."""

    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the cached value, or None if missing/expired."""

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a copy of `value` for `ttl_seconds`; non-positive TTLs are skipped."""

    def delete(self, key: str) -> None:
        """Remove a key without raising if it is absent."""

    def clear(self) -> None:
        """Drop every entry."""

    def stats(self) -> CacheStats:
        """Counters and size snapshot."""
