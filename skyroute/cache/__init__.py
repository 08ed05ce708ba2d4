"""Response cache backends and the factory that picks one from settings."""

import redis

from skyroute.cache.base import CacheEntry, CacheStats, CacheStore
from skyroute.cache.keys import (
    TTLClass,
    build_location_cache_key,
    build_weather_cache_key,
    classify_ttl,
    ttl_seconds_from_settings,
)
from skyroute.cache.memory import InMemoryCacheStore
from skyroute.cache.redis_store import RedisCacheStore
from utils.logging_utils import get_tagged_logger, mask_url_credentials

logger = get_tagged_logger(__name__, tag="cache")


def build_cache_store(settings) -> CacheStore:
    """Redis when configured and reachable, otherwise the in-memory store."""
    redis_url = settings.cache_redis_url if settings.cache_backend == "redis" else None
    logger.debug(
        "Initializing cache store",
        extra={"backend": settings.cache_backend, "redis_url": mask_url_credentials(redis_url)},
    )
    if redis_url:
        try:
            client = redis.Redis.from_url(redis_url)
            client.ping()
            logger.info("Using RedisCacheStore", extra={"redis_url": mask_url_credentials(redis_url)})
            return RedisCacheStore(client)
        except redis.RedisError as exc:
            logger.warning("Falling back to InMemoryCacheStore (Redis unavailable)", extra={"error": str(exc)})
    return InMemoryCacheStore(
        max_entries=settings.cache_max_entries,
        cleanup_threshold=settings.cache_cleanup_threshold,
        sweep_interval_seconds=settings.cache_sweep_interval_seconds,
    )


__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "TTLClass",
    "build_cache_store",
    "build_location_cache_key",
    "build_weather_cache_key",
    "classify_ttl",
    "ttl_seconds_from_settings",
]
