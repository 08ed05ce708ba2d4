import datetime as dt
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import redis

import skyroute.cache as cache_pkg
from skyroute.cache import (
    InMemoryCacheStore,
    RedisCacheStore,
    TTLClass,
    build_cache_store,
    build_location_cache_key,
    build_weather_cache_key,
    classify_ttl,
    ttl_seconds_from_settings,
)
from skyroute.config import Settings
from skyroute.domain import Intent, IntentInfo, ParsedQuery, TimeKind, TimeScope


def _parsed(intent, kind=TimeKind.CURRENT):
    return ParsedQuery(
        original_text="q",
        intent=IntentInfo(primary=intent, confidence=0.8),
        time_scope=TimeScope(kind=kind),
    )


class TestWeatherCacheKey(unittest.TestCase):
    def _key(self, **overrides):
        kwargs = dict(units="metric", language="en", include_forecast=True, include_hourly=False)
        kwargs.update(overrides)
        return build_weather_cache_key((25.03301, 121.56541), **kwargs)

    def test_format(self):
        self.assertEqual(
            self._key(),
            "weather:25.0330,121.5654:metric:en:current:-:-:forecast:no-hourly",
        )

    def test_every_option_changes_the_key(self):
        base = self._key()
        variants = [
            self._key(units="imperial"),
            self._key(language="zh-TW"),
            self._key(include_forecast=False),
            self._key(include_hourly=True),
            self._key(time_kind="historical"),
            self._key(start_date=dt.date(2024, 1, 1)),
            self._key(end_date=dt.datetime(2024, 1, 2, 23, 59)),
        ]
        self.assertEqual(len({base, *variants}), len(variants) + 1)

    def test_precision_groups_nearby_points(self):
        a = build_weather_cache_key((25.03301, 121.5), units="metric", language="en",
                                    include_forecast=True, include_hourly=False, precision=2)
        b = build_weather_cache_key((25.03499, 121.5), units="metric", language="en",
                                    include_forecast=True, include_hourly=False, precision=2)
        self.assertEqual(a, b)

    def test_location_key_normalizes(self):
        self.assertEqual(build_location_cache_key("  New   York ", "en"), "location:en:new york")
        self.assertEqual(build_location_cache_key("Taipei"), "location:-:taipei")


class TestTTL(unittest.TestCase):
    def test_classify(self):
        self.assertEqual(classify_ttl(_parsed(Intent.HISTORICAL, TimeKind.HISTORICAL)), TTLClass.HISTORICAL)
        self.assertEqual(classify_ttl(_parsed(Intent.LOCATION_SEARCH)), TTLClass.LOCATION)
        self.assertEqual(classify_ttl(_parsed(Intent.FORECAST, TimeKind.FORECAST)), TTLClass.FORECAST)
        self.assertEqual(classify_ttl(_parsed(Intent.ADVICE, TimeKind.FORECAST)), TTLClass.FORECAST)
        self.assertEqual(classify_ttl(_parsed(Intent.CURRENT)), TTLClass.CURRENT)

    def test_settings_override(self):
        s = Settings(ttl_current_seconds=60)
        table = ttl_seconds_from_settings(s)
        self.assertEqual(table[TTLClass.CURRENT], 60)
        self.assertEqual(table[TTLClass.LOCATION], 604800)


class TestBuildCacheStore(unittest.TestCase):
    def test_memory_by_default(self):
        store = build_cache_store(Settings(cache_backend="memory", cache_max_entries=50, cache_cleanup_threshold=40))
        self.assertIsInstance(store, InMemoryCacheStore)
        self.assertEqual(store.max_entries, 50)

    def test_redis_when_reachable(self):
        fake_client = SimpleNamespace(ping=lambda: True)
        settings = Settings(cache_backend="redis", cache_redis_url="redis://:pw@cache:6379/0")
        with patch.object(redis.Redis, "from_url", return_value=fake_client):
            store = build_cache_store(settings)
        self.assertIsInstance(store, RedisCacheStore)
        self.assertIs(store.client, fake_client)

    def test_package_keeps_redis_library(self):
        self.assertIs(cache_pkg.redis, redis)

    def test_falls_back_when_redis_unreachable(self):
        def ping():
            raise redis.ConnectionError("refused")

        settings = Settings(cache_backend="redis", cache_redis_url="redis://cache:6379/0")
        with patch.object(redis.Redis, "from_url", return_value=SimpleNamespace(ping=ping)):
            store = build_cache_store(settings)
        self.assertIsInstance(store, InMemoryCacheStore)

    def test_falls_back_when_client_cannot_be_created(self):
        settings = Settings(cache_backend="redis", cache_redis_url="redis://localhost:1/0")
        with patch.object(redis.Redis, "from_url", side_effect=redis.ConnectionError("refused")):
            store = build_cache_store(settings)
        self.assertIsInstance(store, InMemoryCacheStore)


if __name__ == "__main__":
    unittest.main()
