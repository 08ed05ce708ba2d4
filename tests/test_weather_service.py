import asyncio
import datetime as dt
import threading
import unittest

from skyroute.api_scorer import APIScorer
from skyroute.cache import InMemoryCacheStore, build_weather_cache_key
from skyroute.classifier import ConfidenceClassifier
from skyroute.config import Settings
from skyroute.data_sources import CurrentWeather, DailyWeather, GeoLocation, HourlyWeather
from skyroute.domain import Intent, ParsingSource, Section, Units
from skyroute.errors import (
    ErrorCode,
    LocationNotFoundError,
    LocationNotSpecifiedError,
    QueryValidationError,
    RateLimitExceededError,
    UpstreamError,
    UpstreamErrorKind,
)
from skyroute.fallback import FallbackOrchestrator
from skyroute.llm_parser import ParserOutput
from skyroute.rate_limiter import FixedWindowRateLimiter
from skyroute.weather_service import (
    QueryOptions,
    WeatherQueryService,
    completeness_confidence,
    plan_sections,
)

FIXED_NOW = dt.datetime(2024, 5, 1, 10, 30, tzinfo=dt.timezone.utc)

TAIPEI = GeoLocation("Taipei", 25.0478, 121.5319, country="Taiwan", timezone="Asia/Taipei")
OKINAWA = GeoLocation("Okinawa", 26.3344, 127.8056, country="Japan")
KYOTO = GeoLocation("Kyoto", 35.0211, 135.7538, country="Japan")
PARIS = GeoLocation("Paris", 48.8534, 2.3488, country="France")


def _network_error(endpoint="test"):
    return UpstreamError(UpstreamErrorKind.NETWORK_ERROR, "connection reset", endpoint=endpoint)


class FakeSource:
    """In-memory data source; `fail[name]` is an exception (always raised) or a list raised one per call."""

    def __init__(self):
        self.calls = []
        self.fail = {}
        self.places = {"taipei": [TAIPEI], "沖繩": [OKINAWA], "kyoto": [KYOTO], "paris": [PARIS]}
        self.nominatim = {}

    def _enter(self, _call, **kwargs):
        self.calls.append((_call, kwargs))
        planned = self.fail.get(_call)
        if isinstance(planned, list):
            if planned:
                raise planned.pop(0)
        elif planned is not None:
            raise planned

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)

    def kwargs(self, name):
        return next(kwargs for call, kwargs in self.calls if call == name)

    def fetch_current(self, latitude, longitude, *, units="metric"):
        self._enter("fetch_current", units=units)
        return CurrentWeather(time=FIXED_NOW, temperature=27.5, humidity=70.0, weather_code=1, description="Mainly clear")

    def fetch_daily(self, latitude, longitude, *, units="metric", days=7):
        self._enter("fetch_daily", units=units, days=days)
        return [
            DailyWeather(date=dt.date(2024, 5, 1) + dt.timedelta(days=i), temperature_max=29.0, temperature_min=22.0)
            for i in range(days)
        ]

    def fetch_hourly(self, latitude, longitude, *, units="metric", hours=24):
        self._enter("fetch_hourly", units=units, hours=hours)
        return [
            HourlyWeather(time=FIXED_NOW + dt.timedelta(hours=i), temperature=25.0 + i, humidity=80.0)
            for i in range(hours)
        ]

    def fetch_historical(self, latitude, longitude, *, start_date, end_date, units="metric"):
        self._enter("fetch_historical", start_date=start_date, end_date=end_date, units=units)
        return [DailyWeather(date=start_date, temperature_max=18.0, temperature_min=9.0)]

    def geocode(self, name, *, language="en"):
        self._enter("geocode", name=name, language=language)
        return list(self.places.get(name.lower(), []))

    def search_places(self, query, *, language="en"):
        self._enter("search_places", query=query, language=language)
        return list(self.nominatim.get(query.lower(), []))


class ConfidentParser:
    """Stands in for a configured language-model parser that is never needed."""

    async def parse(self, text, context=None):
        return ParserOutput(intent=Intent.CURRENT, confidence=0.1)


class ServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.source = FakeSource()
        self.sleeps = []
        self.settings = Settings(parser_backend="none", upstream_retries=2, upstream_backoff_seconds=0.5)

    def make_service(self, *, parser=None, limiter=None, cache=None):
        async def fake_sleep(delay):
            self.sleeps.append(delay)

        orchestrator = FallbackOrchestrator(ConfidenceClassifier(clock=lambda: FIXED_NOW), parser)
        self.cache = cache if cache is not None else InMemoryCacheStore()
        return WeatherQueryService(
            self.settings,
            orchestrator,
            APIScorer(),
            self.cache,
            limiter or FixedWindowRateLimiter(100, 60),
            self.source,
            clock=lambda: FIXED_NOW,
            sleep=fake_sleep,
        )


class TestEndToEnd(ServiceTestCase):
    async def test_current_weather_then_cache_hit(self):
        service = self.make_service()
        first = await service.query_weather("Taipei weather today")

        self.assertEqual(first.location.name, "Taipei")
        self.assertEqual(first.current.temperature, 27.5)
        self.assertEqual(len(first.daily), 7)
        meta = first.metadata
        self.assertFalse(meta.cached)
        self.assertEqual(meta.intent, Intent.CURRENT)
        self.assertEqual(meta.selected_api, "open_meteo_current")
        self.assertEqual(meta.sources, ["open_meteo_current", "open_meteo_daily"])
        self.assertEqual(meta.confidence, 1.0)
        self.assertEqual(meta.ttl_seconds, 300)
        self.assertEqual(meta.timestamp, FIXED_NOW)
        self.assertEqual(meta.parsing_source, ParsingSource.RULES_FALLBACK)
        self.assertEqual([w.code for w in meta.warnings], [ErrorCode.PARSING_DEGRADED])

        second = await service.query_weather("Taipei weather today")
        self.assertTrue(second.metadata.cached)
        self.assertEqual(second.current.temperature, 27.5)
        self.assertEqual(self.source.count("fetch_current"), 1)
        self.assertEqual(self.source.count("geocode"), 1)

    async def test_confident_rules_with_parser_have_no_warnings(self):
        service = self.make_service(parser=ConfidentParser())
        result = await service.query_weather("Taipei weather today")
        self.assertEqual(result.metadata.parsing_source, ParsingSource.RULES_ONLY)
        self.assertEqual(result.metadata.warnings, [])

    async def test_multilingual_forecast_without_parser(self):
        service = self.make_service()
        result = await service.query_weather("沖繩明天天氣預報 衝浪條件 海浪高度 風速")

        self.assertEqual(result.location.name, "Okinawa")
        self.assertEqual(self.source.kwargs("geocode"), {"name": "沖繩", "language": "zh-TW"})
        self.assertEqual(result.metadata.parsing_source, ParsingSource.RULES_FALLBACK)
        self.assertEqual(result.metadata.intent, Intent.FORECAST)
        self.assertEqual(result.metadata.selected_api, "open_meteo_daily")
        self.assertEqual(result.metadata.ttl_seconds, 1800)
        self.assertTrue(result.daily)
        self.assertIsNotNone(result.current)

    async def test_unavailable_primary_is_routed_around(self):
        service = self.make_service()
        service.health.mark_unavailable("open_meteo_current")
        result = await service.query_weather("Taipei weather today")

        self.assertEqual(result.metadata.selected_api, "open_meteo_hourly")
        self.assertIn("open_meteo_hourly", result.metadata.sources)
        self.assertEqual(self.source.count("fetch_current"), 0)
        # the current section is derived from the first forecast hour
        self.assertEqual(result.current.temperature, 25.0)
        self.assertEqual(self.source.kwargs("fetch_hourly")["hours"], 1)

    async def test_historical_range(self):
        service = self.make_service()
        result = await service.query_weather("Weather in Paris last week")

        kwargs = self.source.kwargs("fetch_historical")
        self.assertEqual(kwargs["start_date"], dt.date(2024, 4, 24))
        self.assertEqual(kwargs["end_date"], dt.date(2024, 4, 30))
        self.assertEqual(result.metadata.selected_api, "open_meteo_archive")
        self.assertEqual(result.metadata.ttl_seconds, 86400)
        self.assertIsNone(result.current)
        self.assertEqual(len(result.historical), 1)

    async def test_location_search_intent(self):
        service = self.make_service()
        result = await service.query_weather("Where is Kyoto?")
        self.assertEqual(result.location.name, "Kyoto")
        self.assertEqual(result.metadata.intent, Intent.LOCATION_SEARCH)
        self.assertEqual(result.metadata.selected_api, "open_meteo_geocoding")
        self.assertEqual(result.metadata.ttl_seconds, 604800)
        self.assertIsNone(result.current)
        self.assertEqual(self.source.count("fetch_current"), 0)

    async def test_options_override_units_and_days(self):
        service = self.make_service()
        options = QueryOptions(units=Units.IMPERIAL, forecast_days=3, include_hourly=True)
        result = await service.query_weather("Taipei weather today", options=options)

        self.assertEqual(self.source.kwargs("fetch_current")["units"], "imperial")
        self.assertEqual(self.source.kwargs("fetch_daily")["days"], 3)
        self.assertEqual(len(result.hourly), 24)
        self.assertIn("open_meteo_hourly", result.metadata.sources)


class TestFailures(ServiceTestCase):
    async def test_missing_location(self):
        service = self.make_service()
        with self.assertRaises(LocationNotSpecifiedError):
            await service.query_weather("Should I bring an umbrella today?")

    async def test_contraction_only_query_has_no_location(self):
        service = self.make_service()
        with self.assertRaises(LocationNotSpecifiedError):
            await service.query_weather("What's the weather?")
        self.assertEqual(self.source.count("geocode"), 0)

    async def test_unknown_location(self):
        service = self.make_service()
        with self.assertRaises(LocationNotFoundError) as ctx:
            await service.query_weather("Weather in Atlantis")
        self.assertEqual(ctx.exception.location, "Atlantis")
        self.assertEqual(self.source.count("search_places"), 1)

    async def test_places_fallback_resolves_location(self):
        self.source.nominatim["springfield"] = [GeoLocation("Springfield", 39.8, -89.64, source="nominatim_places")]
        service = self.make_service()
        result = await service.query_weather("Weather in Springfield")
        self.assertEqual(result.location.source, "nominatim_places")

    async def test_geocoder_errors_surface_when_nobody_answers(self):
        self.source.fail["geocode"] = UpstreamError(UpstreamErrorKind.UNAUTHORIZED, "bad key")
        self.source.fail["search_places"] = UpstreamError(UpstreamErrorKind.INVALID_REQUEST, "bad query")
        service = self.make_service()
        with self.assertRaises(UpstreamError) as ctx:
            await service.query_weather("Weather in Taipei")
        self.assertEqual(ctx.exception.kind, UpstreamErrorKind.UNAUTHORIZED)

    async def test_rate_limit(self):
        limiter = FixedWindowRateLimiter(1, 60, clock=lambda: 0.0)
        service = self.make_service(limiter=limiter)
        await service.query_weather("Taipei weather today")
        with self.assertRaises(RateLimitExceededError) as ctx:
            await service.query_weather("Taipei weather today")
        self.assertEqual(ctx.exception.retry_after_seconds, 60)

    async def test_validation_error_is_raised(self):
        service = self.make_service()
        with self.assertRaises(QueryValidationError):
            await service.query_weather("   ")

    async def test_partial_result_carries_warning(self):
        self.source.fail["fetch_daily"] = UpstreamError(UpstreamErrorKind.INVALID_REQUEST, "bad days")
        service = self.make_service()
        result = await service.query_weather("Taipei weather today")

        self.assertIsNotNone(result.current)
        self.assertIsNone(result.daily)
        self.assertEqual(result.metadata.sources, ["open_meteo_current"])
        self.assertEqual(result.metadata.confidence, 0.8)
        self.assertIn(ErrorCode.UPSTREAM_ERROR, [w.code for w in result.metadata.warnings])

    async def test_transient_errors_are_retried_with_backoff(self):
        self.source.fail["fetch_current"] = [_network_error(), _network_error()]
        service = self.make_service()
        result = await service.query_weather("Taipei weather today", options=QueryOptions(include_forecast=False))

        self.assertEqual(result.current.temperature, 27.5)
        self.assertEqual(self.source.count("fetch_current"), 3)
        self.assertEqual(self.sleeps, [0.5, 1.0])
        self.assertGreater(service.health.snapshot()["open_meteo_current"].error_rate, 0.0)

    async def test_exhausted_retries_fall_back_to_next_provider(self):
        self.source.fail["fetch_current"] = _network_error("open_meteo_current")
        service = self.make_service()
        result = await service.query_weather("Taipei weather today", options=QueryOptions(include_forecast=False))

        self.assertEqual(self.source.count("fetch_current"), 3)
        self.assertEqual(result.metadata.sources, ["open_meteo_hourly"])
        self.assertEqual(result.metadata.warnings[-1].code, ErrorCode.PARSING_DEGRADED)

    async def test_all_sections_failing_raises_first_error(self):
        self.source.fail["fetch_current"] = _network_error("open_meteo_current")
        self.source.fail["fetch_hourly"] = UpstreamError(UpstreamErrorKind.INVALID_REQUEST, "nope")
        service = self.make_service()
        with self.assertRaises(UpstreamError) as ctx:
            await service.query_weather("Taipei weather today", options=QueryOptions(include_forecast=False))
        self.assertEqual(ctx.exception.kind, UpstreamErrorKind.NETWORK_ERROR)
        self.assertEqual(self.cache.stats().size, 1)  # only the geocoding result

    async def test_unauthorized_disables_endpoint(self):
        self.source.fail["fetch_current"] = UpstreamError(UpstreamErrorKind.UNAUTHORIZED, "key revoked")
        service = self.make_service()
        result = await service.query_weather("Taipei weather today", options=QueryOptions(include_forecast=False))

        self.assertEqual(self.source.count("fetch_current"), 1)
        self.assertEqual(self.sleeps, [])
        self.assertIn("open_meteo_hourly", result.metadata.sources)
        self.assertFalse(service.stats()["endpoint_health"]["open_meteo_current"]["available"])

    async def test_unexpected_exception_is_wrapped(self):
        self.source.fail["fetch_current"] = RuntimeError("bug")
        service = self.make_service()
        with self.assertLogs("skyroute.weather_service", level="ERROR"):
            result = await service.query_weather("Taipei weather today", options=QueryOptions(include_forecast=False))
        self.assertEqual(result.metadata.sources, ["open_meteo_hourly"])

    async def test_invalid_cached_result_is_discarded(self):
        service = self.make_service()
        key = build_weather_cache_key(
            (TAIPEI.latitude, TAIPEI.longitude),
            units="metric",
            language="en",
            include_forecast=True,
            include_hourly=False,
            time_kind="current",
        )
        self.cache.set(key, {"location": "nowhere"}, 300)
        result = await service.query_weather("Taipei weather today")

        self.assertFalse(result.metadata.cached)
        self.assertEqual(self.source.count("fetch_current"), 1)
        self.assertIn("location", self.cache.get(key))


class TestSearchAndStats(ServiceTestCase):
    async def test_search_locations_uses_cache(self):
        service = self.make_service()
        first = await service.search_locations(" Kyoto ")
        second = await service.search_locations("kyoto")
        self.assertEqual(first, [KYOTO])
        self.assertEqual(second, [KYOTO])
        self.assertEqual(self.source.count("geocode"), 1)

    async def test_search_locations_rejects_empty(self):
        service = self.make_service()
        with self.assertRaises(QueryValidationError):
            await service.search_locations("  ")

    async def test_stats(self):
        service = self.make_service()
        await service.query_weather("Taipei weather today")
        stats = service.stats()
        self.assertEqual(stats["rate_limit_remaining"], 99)
        self.assertEqual(stats["cache"]["size"], 2)
        self.assertIn("open_meteo_current", stats["endpoint_health"])
        self.assertIsNotNone(stats["endpoint_health"]["open_meteo_current"]["latency_ms"])

    async def test_parse_only(self):
        service = self.make_service()
        parsed = await service.parse("明天北京天氣")
        self.assertEqual(parsed.location.name, "北京")
        self.assertEqual(self.source.calls, [])


class RecordingCache(InMemoryCacheStore):
    def __init__(self):
        super().__init__()
        self.writes = []

    def set(self, key, value, ttl_seconds):
        self.writes.append(key)
        super().set(key, value, ttl_seconds)


class GatedSource(FakeSource):
    """Holds each current-weather fetch until `parties` fetches are in flight together."""

    def __init__(self, parties):
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=5)

    def fetch_current(self, latitude, longitude, *, units="metric"):
        self.barrier.wait()
        return super().fetch_current(latitude, longitude, units=units)


class TestConcurrentQueries(ServiceTestCase):
    async def test_identical_cold_queries_both_fetch_upstream(self):
        self.source = GatedSource(parties=2)
        cache = RecordingCache()
        service = self.make_service(cache=cache)

        first, second = await asyncio.gather(
            service.query_weather("Taipei weather today"),
            service.query_weather("Taipei weather today"),
        )

        self.assertFalse(first.metadata.cached)
        self.assertFalse(second.metadata.cached)
        self.assertEqual(self.source.count("fetch_current"), 2)
        weather_writes = [key for key in cache.writes if key.startswith("weather:")]
        self.assertEqual(len(weather_writes), 2)
        self.assertEqual(len(set(weather_writes)), 1)

        third = await service.query_weather("Taipei weather today")
        self.assertTrue(third.metadata.cached)


class TestHelpers(unittest.TestCase):
    def test_plan_sections(self):
        options = QueryOptions()
        self.assertEqual(plan_sections(Intent.CURRENT, options), [Section.CURRENT, Section.DAILY])
        self.assertEqual(plan_sections(Intent.FORECAST, options), [Section.DAILY, Section.CURRENT])
        self.assertEqual(plan_sections(Intent.HISTORICAL, QueryOptions(include_hourly=True)), [Section.HISTORICAL])
        self.assertEqual(
            plan_sections(Intent.CURRENT, QueryOptions(include_forecast=False, include_hourly=True)),
            [Section.CURRENT, Section.HOURLY],
        )

    def test_completeness_confidence(self):
        self.assertEqual(completeness_confidence({}), 0.5)
        self.assertEqual(completeness_confidence({Section.HISTORICAL: [1]}), 0.7)
        self.assertEqual(
            completeness_confidence({Section.CURRENT: 1, Section.DAILY: [1], Section.HOURLY: [1]}),
            1.0,
        )

    def test_options_bounds(self):
        with self.assertRaises(ValueError):
            QueryOptions(forecast_days=30)


if __name__ == "__main__":
    unittest.main()
