"""Helpers for fetching weather, archive and geocoding data from the Open-Meteo APIs."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
import requests_cache
from retry_requests import retry

from skyroute.errors import UpstreamError, UpstreamErrorKind
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="open_meteo_client")

OPEN_METEO_WEATHER_URL = "https://api.open-meteo.com/v1/forecast"
OPEN_METEO_ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
OPEN_METEO_GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"

DEFAULT_TIMEOUT_SECONDS = 10.0

UNIT_PARAMS = {
    "metric": {"temperature_unit": "celsius", "wind_speed_unit": "kmh", "precipitation_unit": "mm"},
    "imperial": {"temperature_unit": "fahrenheit", "wind_speed_unit": "mph", "precipitation_unit": "inch"},
}

CURRENT_VARS = [
    "temperature_2m",
    "apparent_temperature",
    "relative_humidity_2m",
    "dew_point_2m",
    "precipitation",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "pressure_msl",
    "visibility",
    "uv_index",
    "cloud_cover",
    "weather_code",
    "is_day",
]

DAILY_VARS = [
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "uv_index_max",
    "sunrise",
    "sunset",
    "weather_code",
]

ARCHIVE_DAILY_VARS = [
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "wind_speed_10m_max",
    "sunrise",
    "sunset",
    "weather_code",
]

HOURLY_VARS = [
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation_probability",
    "precipitation",
    "wind_speed_10m",
    "visibility",
    "uv_index",
    "weather_code",
]

# WMO weather interpretation codes
WMO_DESCRIPTIONS = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow fall",
    73: "Moderate snow fall",
    75: "Heavy snow fall",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def describe_weather_code(code: Optional[int]) -> Optional[str]:
    if code is None:
        return None
    return WMO_DESCRIPTIONS.get(int(code), "Unknown")


@dataclass
class GeoLocation:
    """A resolved place with coordinates."""
    name: str
    latitude: float
    longitude: float
    country: Optional[str] = None
    region: Optional[str] = None
    timezone: Optional[str] = None
    source: str = "open_meteo_geocoding"

    @property
    def coordinates(self) -> tuple[float, float]:
        return self.latitude, self.longitude


@dataclass
class CurrentWeather:
    """Current conditions at one location."""
    time: dt.datetime
    temperature: Optional[float]
    apparent_temperature: Optional[float] = None
    humidity: Optional[float] = None
    dew_point: Optional[float] = None
    precipitation: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    wind_gusts: Optional[float] = None
    pressure: Optional[float] = None
    visibility: Optional[float] = None
    uv_index: Optional[float] = None
    cloud_cover: Optional[float] = None
    weather_code: Optional[int] = None
    description: Optional[str] = None
    is_day: Optional[bool] = None
    units: Dict[str, str] = field(default_factory=dict)


@dataclass
class DailyWeather:
    """One day of forecast or archive data."""
    date: dt.date
    temperature_max: Optional[float]
    temperature_min: Optional[float]
    precipitation_sum: Optional[float] = None
    precipitation_probability: Optional[float] = None
    wind_speed_max: Optional[float] = None
    uv_index_max: Optional[float] = None
    sunrise: Optional[str] = None
    sunset: Optional[str] = None
    weather_code: Optional[int] = None
    description: Optional[str] = None
    units: Dict[str, str] = field(default_factory=dict)


@dataclass
class HourlyWeather:
    """One forecast hour."""
    time: dt.datetime
    temperature: Optional[float]
    humidity: Optional[float] = None
    precipitation_probability: Optional[float] = None
    precipitation: Optional[float] = None
    wind_speed: Optional[float] = None
    visibility: Optional[float] = None
    uv_index: Optional[float] = None
    weather_code: Optional[int] = None
    description: Optional[str] = None
    units: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# HTTP session and error mapping
# ---------------------------------------------------------------------------

_default_session: Optional[requests.Session] = None


def build_session(
    cache_path: str = ".cache/skyroute-http",
    *,
    expire_after: int = 300,
    retries: int = 3,
    backoff_factor: float = 0.2,
) -> requests.Session:
    """HTTP-cached session with transport-level retries."""
    cache_session = requests_cache.CachedSession(cache_path, expire_after=expire_after)
    return retry(cache_session, retries=retries, backoff_factor=backoff_factor)


def get_session() -> requests.Session:
    """Lazily build the process-wide default session."""
    global _default_session
    if _default_session is None:
        logger.info("Using requests_cache and retry_requests")
        _default_session = build_session()
    return _default_session


def _kind_for_status(status: int, body: str) -> UpstreamErrorKind:
    if status == 404:
        return UpstreamErrorKind.NOT_FOUND
    if status in (400, 422):
        return UpstreamErrorKind.INVALID_REQUEST
    if status in (401, 403):
        return UpstreamErrorKind.UNAUTHORIZED
    if status == 429:
        lowered = body.lower()
        if "limit" in lowered and ("daily" in lowered or "hourly" in lowered or "monthly" in lowered):
            return UpstreamErrorKind.QUOTA_EXCEEDED
        return UpstreamErrorKind.RATE_LIMITED
    if status >= 500:
        return UpstreamErrorKind.SERVER_ERROR
    return UpstreamErrorKind.INVALID_REQUEST


def get_json(
    url: str,
    params: Dict[str, Any],
    *,
    endpoint: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    """GET `url` and decode JSON, mapping every failure to an `UpstreamError`."""
    session = session or get_session()
    try:
        resp = session.get(url, params=params, timeout=timeout, headers=headers or {})
    except requests.Timeout as exc:
        raise UpstreamError(UpstreamErrorKind.NETWORK_ERROR, f"Timed out calling {endpoint}", endpoint=endpoint) from exc
    except requests.ConnectionError as exc:
        raise UpstreamError(UpstreamErrorKind.NETWORK_ERROR, f"Could not connect to {endpoint}", endpoint=endpoint) from exc
    except requests.exceptions.RetryError as exc:
        raise UpstreamError(UpstreamErrorKind.SERVER_ERROR, f"{endpoint} kept failing after retries", endpoint=endpoint) from exc
    except requests.RequestException as exc:
        raise UpstreamError(UpstreamErrorKind.NETWORK_ERROR, f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc

    status = getattr(resp, "status_code", 200)
    if status >= 400:
        body = getattr(resp, "text", "") or ""
        kind = _kind_for_status(status, body)
        logger.warning(
            "Upstream returned an error status",
            extra={"endpoint": endpoint, "status": status, "kind": kind.value},
        )
        raise UpstreamError(kind, f"{endpoint} returned HTTP {status}", endpoint=endpoint, status_code=status)

    try:
        data = resp.json()
    except ValueError as exc:
        raise UpstreamError(UpstreamErrorKind.SERVER_ERROR, f"{endpoint} returned invalid JSON", endpoint=endpoint) from exc

    if isinstance(data, dict) and data.get("error"):
        reason = str(data.get("reason") or "unknown error")
        raise UpstreamError(UpstreamErrorKind.INVALID_REQUEST, f"{endpoint} rejected the request: {reason}", endpoint=endpoint)
    return data


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _tz_from_payload(data: dict) -> dt.tzinfo:
    return dt.timezone(dt.timedelta(seconds=int(data.get("utc_offset_seconds") or 0)))


def _parse_time(value: str, tz: dt.tzinfo) -> dt.datetime:
    """Interpret an Open-Meteo local time string in the location's UTC offset."""
    return dt.datetime.fromisoformat(value).replace(tzinfo=tz)


def _column(block: dict, name: str, length: int) -> list:
    values = block.get(name)
    if values is None:
        return [None] * length
    return list(values)


def _require(data: Any, key: str, endpoint: str) -> dict:
    if not isinstance(data, dict) or not isinstance(data.get(key), dict):
        raise UpstreamError(UpstreamErrorKind.SERVER_ERROR, f"{endpoint} response has no '{key}' block", endpoint=endpoint)
    return data[key]


def _parse_daily(data: Any, endpoint: str) -> List[DailyWeather]:
    daily = _require(data, "daily", endpoint)
    units = dict(data.get("daily_units") or {})
    dates = daily.get("time") or []
    n = len(dates)
    t_max = _column(daily, "temperature_2m_max", n)
    t_min = _column(daily, "temperature_2m_min", n)
    precip = _column(daily, "precipitation_sum", n)
    precip_prob = _column(daily, "precipitation_probability_max", n)
    wind = _column(daily, "wind_speed_10m_max", n)
    uv = _column(daily, "uv_index_max", n)
    sunrise = _column(daily, "sunrise", n)
    sunset = _column(daily, "sunset", n)
    codes = _column(daily, "weather_code", n)

    out: List[DailyWeather] = []
    for i, day in enumerate(dates):
        out.append(
            DailyWeather(
                date=dt.date.fromisoformat(day),
                temperature_max=t_max[i],
                temperature_min=t_min[i],
                precipitation_sum=precip[i],
                precipitation_probability=precip_prob[i],
                wind_speed_max=wind[i],
                uv_index_max=uv[i],
                sunrise=sunrise[i],
                sunset=sunset[i],
                weather_code=codes[i],
                description=describe_weather_code(codes[i]),
                units=units,
            )
        )
    return out


# ---------------------------------------------------------------------------
# Public fetchers
# ---------------------------------------------------------------------------


def fetch_current(
    latitude: float,
    longitude: float,
    *,
    units: str = "metric",
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> CurrentWeather:
    """Fetch the latest observation for the given coordinates."""
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "current": ",".join(CURRENT_VARS),
        "timezone": "auto",
        **UNIT_PARAMS.get(units, UNIT_PARAMS["metric"]),
    }
    data = get_json(OPEN_METEO_WEATHER_URL, params, endpoint="open_meteo_current", session=session, timeout=timeout)
    current = _require(data, "current", "open_meteo_current")
    code = current.get("weather_code")
    is_day = current.get("is_day")
    return CurrentWeather(
        time=_parse_time(current["time"], _tz_from_payload(data)),
        temperature=current.get("temperature_2m"),
        apparent_temperature=current.get("apparent_temperature"),
        humidity=current.get("relative_humidity_2m"),
        dew_point=current.get("dew_point_2m"),
        precipitation=current.get("precipitation"),
        wind_speed=current.get("wind_speed_10m"),
        wind_direction=current.get("wind_direction_10m"),
        wind_gusts=current.get("wind_gusts_10m"),
        pressure=current.get("pressure_msl"),
        visibility=current.get("visibility"),
        uv_index=current.get("uv_index"),
        cloud_cover=current.get("cloud_cover"),
        weather_code=code,
        description=describe_weather_code(code),
        is_day=bool(is_day) if is_day is not None else None,
        units=dict(data.get("current_units") or {}),
    )


def fetch_daily(
    latitude: float,
    longitude: float,
    *,
    units: str = "metric",
    days: int = 7,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> List[DailyWeather]:
    """Fetch `days` days of daily forecast."""
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "daily": ",".join(DAILY_VARS),
        "forecast_days": days,
        "timezone": "auto",
        **UNIT_PARAMS.get(units, UNIT_PARAMS["metric"]),
    }
    data = get_json(OPEN_METEO_WEATHER_URL, params, endpoint="open_meteo_daily", session=session, timeout=timeout)
    return _parse_daily(data, "open_meteo_daily")


def fetch_hourly(
    latitude: float,
    longitude: float,
    *,
    units: str = "metric",
    hours: int = 24,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> List[HourlyWeather]:
    """Fetch the next `hours` hours of forecast."""
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "hourly": ",".join(HOURLY_VARS),
        "forecast_hours": hours,
        "timezone": "auto",
        **UNIT_PARAMS.get(units, UNIT_PARAMS["metric"]),
    }
    data = get_json(OPEN_METEO_WEATHER_URL, params, endpoint="open_meteo_hourly", session=session, timeout=timeout)
    hourly = _require(data, "hourly", "open_meteo_hourly")
    hourly_units = dict(data.get("hourly_units") or {})
    tz = _tz_from_payload(data)
    times = hourly.get("time") or []
    n = len(times)
    temp = _column(hourly, "temperature_2m", n)
    humidity = _column(hourly, "relative_humidity_2m", n)
    precip_prob = _column(hourly, "precipitation_probability", n)
    precip = _column(hourly, "precipitation", n)
    wind = _column(hourly, "wind_speed_10m", n)
    visibility = _column(hourly, "visibility", n)
    uv = _column(hourly, "uv_index", n)
    codes = _column(hourly, "weather_code", n)

    out: List[HourlyWeather] = []
    for i, t in enumerate(times[:hours]):
        out.append(
            HourlyWeather(
                time=_parse_time(t, tz),
                temperature=temp[i],
                humidity=humidity[i],
                precipitation_probability=precip_prob[i],
                precipitation=precip[i],
                wind_speed=wind[i],
                visibility=visibility[i],
                uv_index=uv[i],
                weather_code=codes[i],
                description=describe_weather_code(codes[i]),
                units=hourly_units,
            )
        )
    return out


def fetch_historical(
    latitude: float,
    longitude: float,
    *,
    start_date: dt.date,
    end_date: dt.date,
    units: str = "metric",
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> List[DailyWeather]:
    """Fetch daily archive (reanalysis) data for an inclusive date range."""
    if end_date < start_date:
        raise UpstreamError(
            UpstreamErrorKind.INVALID_REQUEST,
            "Archive end date is before its start date",
            endpoint="open_meteo_archive",
        )
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "daily": ",".join(ARCHIVE_DAILY_VARS),
        "timezone": "auto",
        **UNIT_PARAMS.get(units, UNIT_PARAMS["metric"]),
    }
    data = get_json(OPEN_METEO_ARCHIVE_URL, params, endpoint="open_meteo_archive", session=session, timeout=timeout)
    return _parse_daily(data, "open_meteo_archive")


def geocode(
    name: str,
    *,
    language: str = "en",
    count: int = 5,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> List[GeoLocation]:
    """Resolve a place name; an empty list means no match."""
    params = {
        "name": name,
        "count": count,
        "language": (language or "en").split("-")[0],
        "format": "json",
    }
    data = get_json(OPEN_METEO_GEOCODING_URL, params, endpoint="open_meteo_geocoding", session=session, timeout=timeout)
    results = data.get("results") if isinstance(data, dict) else None
    out: List[GeoLocation] = []
    for item in results or []:
        if item.get("latitude") is None or item.get("longitude") is None:
            continue
        out.append(
            GeoLocation(
                name=item.get("name") or name,
                latitude=float(item["latitude"]),
                longitude=float(item["longitude"]),
                country=item.get("country"),
                region=item.get("admin1"),
                timezone=item.get("timezone"),
                source="open_meteo_geocoding",
            )
        )
    logger.debug("Geocoded location", extra={"query": name, "results": len(out)})
    return out
