import datetime as dt
import unittest

import requests

from skyroute.data_sources import open_meteo_client
from skyroute.errors import UpstreamError, UpstreamErrorKind


class DummyResp:
    def __init__(self, payload, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class DummySession:
    def __init__(self, resp=None, exc=None):
        self.resp = resp
        self.exc = exc
        self.calls = []

    def get(self, url, params=None, timeout=None, **kwargs):
        self.calls.append((url, params, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.resp


def _current_payload():
    return {
        "utc_offset_seconds": 28800,
        "current": {
            "time": "2024-05-01T14:00",
            "temperature_2m": 27.5,
            "apparent_temperature": 30.1,
            "relative_humidity_2m": 70,
            "precipitation": 0.0,
            "wind_speed_10m": 12.0,
            "weather_code": 2,
            "is_day": 1,
        },
        "current_units": {"temperature_2m": "°C", "wind_speed_10m": "km/h"},
    }


def _daily_payload():
    return {
        "utc_offset_seconds": 0,
        "daily": {
            "time": ["2024-05-01", "2024-05-02"],
            "temperature_2m_max": [28.0, 29.5],
            "temperature_2m_min": [21.0, 22.0],
            "precipitation_sum": [0.0, 4.2],
            "weather_code": [1, 63],
        },
        "daily_units": {"temperature_2m_max": "°C"},
    }


class TestFetchers(unittest.TestCase):
    def test_fetch_current_parses_payload(self):
        session = DummySession(DummyResp(_current_payload()))
        current = open_meteo_client.fetch_current(25.03, 121.56, session=session)

        self.assertEqual(current.temperature, 27.5)
        self.assertEqual(current.humidity, 70)
        self.assertEqual(current.description, "Partly cloudy")
        self.assertTrue(current.is_day)
        self.assertEqual(current.time.utcoffset(), dt.timedelta(hours=8))
        self.assertEqual(current.units["temperature_2m"], "°C")
        # missing columns stay None
        self.assertIsNone(current.visibility)

        url, params, _ = session.calls[0]
        self.assertEqual(url, open_meteo_client.OPEN_METEO_WEATHER_URL)
        self.assertEqual(params["temperature_unit"], "celsius")

    def test_imperial_units_are_requested(self):
        session = DummySession(DummyResp(_current_payload()))
        open_meteo_client.fetch_current(40.7, -74.0, units="imperial", session=session)
        params = session.calls[0][1]
        self.assertEqual(params["temperature_unit"], "fahrenheit")
        self.assertEqual(params["wind_speed_unit"], "mph")

    def test_fetch_daily_parses_rows(self):
        session = DummySession(DummyResp(_daily_payload()))
        days = open_meteo_client.fetch_daily(25.03, 121.56, days=2, session=session)

        self.assertEqual([d.date for d in days], [dt.date(2024, 5, 1), dt.date(2024, 5, 2)])
        self.assertEqual(days[1].precipitation_sum, 4.2)
        self.assertEqual(days[1].description, "Moderate rain")
        self.assertIsNone(days[0].uv_index_max)
        self.assertEqual(session.calls[0][1]["forecast_days"], 2)

    def test_fetch_hourly_truncates_to_requested_hours(self):
        payload = {
            "hourly": {
                "time": ["2024-05-01T10:00", "2024-05-01T11:00", "2024-05-01T12:00"],
                "temperature_2m": [20.0, 21.0, 22.0],
                "weather_code": [0, 0, 3],
            }
        }
        session = DummySession(DummyResp(payload))
        hours = open_meteo_client.fetch_hourly(1.0, 2.0, hours=2, session=session)
        self.assertEqual(len(hours), 2)
        self.assertEqual(hours[1].temperature, 21.0)
        self.assertIsNone(hours[0].humidity)

    def test_fetch_historical_uses_archive(self):
        session = DummySession(DummyResp(_daily_payload()))
        days = open_meteo_client.fetch_historical(
            25.0, 121.5, start_date=dt.date(2024, 5, 1), end_date=dt.date(2024, 5, 2), session=session
        )
        url, params, _ = session.calls[0]
        self.assertEqual(url, open_meteo_client.OPEN_METEO_ARCHIVE_URL)
        self.assertEqual(params["start_date"], "2024-05-01")
        self.assertEqual(len(days), 2)

    def test_fetch_historical_rejects_reversed_range(self):
        with self.assertRaises(UpstreamError) as ctx:
            open_meteo_client.fetch_historical(
                0, 0, start_date=dt.date(2024, 5, 2), end_date=dt.date(2024, 5, 1), session=DummySession()
            )
        self.assertEqual(ctx.exception.kind, UpstreamErrorKind.INVALID_REQUEST)

    def test_missing_block_is_server_error(self):
        session = DummySession(DummyResp({"latitude": 1.0}))
        with self.assertRaises(UpstreamError) as ctx:
            open_meteo_client.fetch_current(1.0, 2.0, session=session)
        self.assertEqual(ctx.exception.kind, UpstreamErrorKind.SERVER_ERROR)
        self.assertTrue(ctx.exception.retryable)

    def test_geocode_skips_rows_without_coordinates(self):
        payload = {
            "results": [
                {"name": "Taipei", "latitude": 25.05, "longitude": 121.53, "country": "Taiwan", "admin1": "Taipei"},
                {"name": "Nowhere"},
            ]
        }
        session = DummySession(DummyResp(payload))
        results = open_meteo_client.geocode("Taipei", language="zh-TW", session=session)
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].coordinates, (25.05, 121.53))
        self.assertEqual(results[0].source, "open_meteo_geocoding")
        self.assertEqual(session.calls[0][1]["language"], "zh")

    def test_geocode_no_results(self):
        session = DummySession(DummyResp({"generationtime_ms": 0.2}))
        self.assertEqual(open_meteo_client.geocode("Atlantis", session=session), [])


class TestErrorMapping(unittest.TestCase):
    def _kind(self, status, text=""):
        session = DummySession(DummyResp({}, status_code=status, text=text))
        with self.assertRaises(UpstreamError) as ctx:
            open_meteo_client.get_json("https://x", {}, endpoint="test", session=session)
        self.assertEqual(ctx.exception.status_code, status)
        return ctx.exception.kind

    def test_status_codes(self):
        self.assertEqual(self._kind(404), UpstreamErrorKind.NOT_FOUND)
        self.assertEqual(self._kind(400), UpstreamErrorKind.INVALID_REQUEST)
        self.assertEqual(self._kind(422), UpstreamErrorKind.INVALID_REQUEST)
        self.assertEqual(self._kind(401), UpstreamErrorKind.UNAUTHORIZED)
        self.assertEqual(self._kind(403), UpstreamErrorKind.UNAUTHORIZED)
        self.assertEqual(self._kind(429), UpstreamErrorKind.RATE_LIMITED)
        self.assertEqual(self._kind(429, "Daily API request limit exceeded"), UpstreamErrorKind.QUOTA_EXCEEDED)
        self.assertEqual(self._kind(503), UpstreamErrorKind.SERVER_ERROR)

    def test_transport_failures_are_network_errors(self):
        for exc in (requests.Timeout("slow"), requests.ConnectionError("refused")):
            session = DummySession(exc=exc)
            with self.assertRaises(UpstreamError) as ctx:
                open_meteo_client.get_json("https://x", {}, endpoint="test", session=session)
            self.assertEqual(ctx.exception.kind, UpstreamErrorKind.NETWORK_ERROR)
            self.assertTrue(ctx.exception.retryable)

    def test_invalid_json(self):
        session = DummySession(DummyResp(ValueError("no json")))
        with self.assertRaises(UpstreamError) as ctx:
            open_meteo_client.get_json("https://x", {}, endpoint="test", session=session)
        self.assertEqual(ctx.exception.kind, UpstreamErrorKind.SERVER_ERROR)

    def test_error_flag_in_body(self):
        session = DummySession(DummyResp({"error": True, "reason": "Latitude must be in range"}))
        with self.assertRaises(UpstreamError) as ctx:
            open_meteo_client.get_json("https://x", {}, endpoint="test", session=session)
        self.assertEqual(ctx.exception.kind, UpstreamErrorKind.INVALID_REQUEST)
        self.assertIn("Latitude", ctx.exception.message)
        self.assertFalse(ctx.exception.retryable)


class TestDescribeWeatherCode(unittest.TestCase):
    def test_known_unknown_and_missing(self):
        self.assertEqual(open_meteo_client.describe_weather_code(0), "Clear sky")
        self.assertEqual(open_meteo_client.describe_weather_code(42), "Unknown")
        self.assertIsNone(open_meteo_client.describe_weather_code(None))


if __name__ == "__main__":
    unittest.main()
